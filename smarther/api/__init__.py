"""
Smarther API client module.

- SmartherClient: Authenticated HTTP client for API calls

Authentication is handled automatically via the OAuth module.
"""

from .client import SmartherClient
from .exceptions import SmartherAPIError, SmartherConnectionError

__all__ = [
    "SmartherClient",
    "SmartherAPIError",
    "SmartherConnectionError",
]
