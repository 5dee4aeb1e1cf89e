"""Exceptions for Smarther API client."""

from typing import Any, Optional


class SmartherAPIError(Exception):
    """Base exception for Smarther API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code if applicable
            detail: Response body if available
        """
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.message)


class SmartherConnectionError(SmartherAPIError):
    """Connection to the Smarther API failed."""

    pass
