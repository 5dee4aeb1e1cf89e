"""
Smarther API client.

OAuth 2.0 authorization and authenticated request handling for the
Legrand Smarther v2.0 API.
"""

__version__ = "0.2.0"
