"""
OAuth exception classes for Smarther API integration.

This module defines the exception hierarchy for all OAuth-related errors.
Errors fall into three families:

- FlowError: the interactive authorization flow did not produce a code
- TokenExchangeError: a call to the vendor token endpoint failed
- AuthError: a caller could not obtain a usable access token
"""

from typing import Optional


class SmartherOAuthError(Exception):
    """Base exception for all Smarther OAuth errors."""

    pass


class ConfigurationError(SmartherOAuthError):
    """OAuth configuration error (missing or invalid configuration)."""

    pass


class TokenStorageError(SmartherOAuthError):
    """Token storage operation failed (file I/O error)."""

    pass


# Authorization flow errors


class FlowError(SmartherOAuthError):
    """OAuth authorization flow error."""

    pass


class StateMismatchError(FlowError):
    """
    Callback state did not match the outstanding authorization request.

    Always treated as a potential forgery attempt: the flow is aborted.
    """

    pass


class AuthorizationDeniedError(FlowError):
    """The user or the vendor denied the authorization request."""

    def __init__(self, error: str, error_description: Optional[str] = None):
        self.error = error
        self.error_description = error_description
        message = f"Authorization denied: {error}"
        if error_description:
            message += f" - {error_description}"
        super().__init__(message)


class AuthorizationTimeoutError(FlowError):
    """No callback was received before the flow timed out."""

    pass


class ListenerBindError(FlowError):
    """The local callback listener could not bind its port."""

    pass


# Token endpoint errors


class TokenExchangeError(SmartherOAuthError):
    """Exchange against the token endpoint failed."""

    pass


class NetworkExchangeError(TokenExchangeError):
    """Transport failure or transient server error during a token exchange."""

    pass


class InvalidGrantError(TokenExchangeError):
    """
    The vendor rejected the grant (authorization code or refresh token).

    On a refresh exchange this means the refresh token is no longer valid
    and the full authorization flow must be run again.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
    ):
        self.status_code = status_code
        self.error = error
        super().__init__(message)


class TokenRequestRejectedError(TokenExchangeError):
    """
    The token endpoint refused the request for a reason other than the grant.

    Typical causes are invalid client credentials or an invalid request.
    The stored grant may still be valid, so tokens are kept.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
    ):
        self.status_code = status_code
        self.error = error
        super().__init__(message)


class MalformedTokenResponseError(TokenExchangeError):
    """The token endpoint returned a body that could not be parsed."""

    pass


# Token availability errors


class AuthError(SmartherOAuthError):
    """No usable access token could be provided to the caller."""

    pass


class NoTokenError(AuthError):
    """No tokens available (need to authorize first)."""

    pass


class RefreshFailedError(AuthError):
    """
    Token refresh failed for a transient reason.

    The previous token set is retained; the caller may retry later.
    """

    pass


class ReauthorizationRequiredError(AuthError):
    """The refresh token was rejected; the authorization flow must be re-run."""

    pass


class AuthenticationFailedError(AuthError):
    """The API rejected the request again after a forced token refresh."""

    pass
