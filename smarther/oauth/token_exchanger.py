"""
Token exchanger for Smarther OAuth integration.

This module performs the two token endpoint exchanges:
- authorization code -> access/refresh tokens
- refresh token -> new access token

Failures are classified so the token manager can decide between keeping
the current tokens (transient failure) and requiring re-authorization
(rejected grant). Exchanges are never retried here.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from .config import SmartherOAuthConfig
from .exceptions import (
    InvalidGrantError,
    MalformedTokenResponseError,
    NetworkExchangeError,
    TokenRequestRejectedError,
)
from .token_storage import TokenSet

logger = logging.getLogger(__name__)

# Token endpoint statuses that leave the grant untouched
TRANSIENT_STATUS_CODES = frozenset({408, 429})


class BaseTokenExchanger(ABC):
    """
    Interface for token endpoint exchanges.

    The token manager depends only on this interface, so tests can inject
    a deterministic implementation without network access.
    """

    @abstractmethod
    async def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        """
        Exchange an authorization code for tokens.

        Raises:
            NetworkExchangeError: Transport failure or transient server error
            InvalidGrantError: The vendor rejected the code
            TokenRequestRejectedError: The request was refused (e.g. bad client credentials)
            MalformedTokenResponseError: Unparseable response body
        """

    @abstractmethod
    async def exchange_refresh(
        self, refresh_token: str, previous: Optional[TokenSet] = None
    ) -> TokenSet:
        """
        Exchange a refresh token for a new token set.

        Raises:
            NetworkExchangeError: Transport failure or transient server error
            InvalidGrantError: The refresh token is no longer valid
            TokenRequestRejectedError: The request was refused (e.g. bad client credentials)
            MalformedTokenResponseError: Unparseable response body
        """

    async def aclose(self) -> None:
        """Release any resources held by the exchanger."""


class HttpTokenExchanger(BaseTokenExchanger):
    """
    Token exchanger that talks to the Smarther token endpoint over HTTP.

    Client credentials are sent in the form body together with the grant.
    """

    def __init__(
        self,
        config: SmartherOAuthConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize token exchanger.

        Args:
            config: OAuth configuration
            http_client: HTTP client to use (creates and owns one if not provided)
        """
        self.config = config
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=config.request_timeout_seconds
        )

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        """Exchange an authorization code for access and refresh tokens."""
        logger.info("Exchanging authorization code for tokens")

        data = await self._post_token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            }
        )
        token_set = TokenSet.from_token_response(data)

        logger.info("Successfully obtained tokens")
        return token_set

    async def exchange_refresh(
        self, refresh_token: str, previous: Optional[TokenSet] = None
    ) -> TokenSet:
        """Exchange a refresh token for a new access token."""
        logger.info("Refreshing access token")

        data = await self._post_token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )
        token_set = TokenSet.from_token_response(data, previous=previous)

        logger.info("Successfully refreshed tokens")
        return token_set

    async def _post_token_request(self, grant: Dict[str, str]) -> Any:
        """
        POST a grant to the token endpoint and decode the JSON response.

        Args:
            grant: Grant specific form fields

        Returns:
            Decoded JSON body

        Raises:
            NetworkExchangeError: Transport failure, 408, 429 or 5xx response
            InvalidGrantError: invalid_grant, or a 400 without an error code
            TokenRequestRejectedError: Any other 4xx response
            MalformedTokenResponseError: Body is not JSON
        """
        form = dict(grant)
        form["client_id"] = self.config.client_id
        form["client_secret"] = self.config.client_secret
        grant_type = grant["grant_type"]

        try:
            response = await self.http_client.post(
                self.config.token_url,
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as e:
            logger.error(f"Network error during {grant_type} exchange: {e}")
            raise NetworkExchangeError(
                f"Network error during {grant_type} exchange: {e}"
            ) from e

        status = response.status_code
        if status in TRANSIENT_STATUS_CODES or status >= 500:
            logger.error(f"Token endpoint unavailable: {status} - {response.text}")
            raise NetworkExchangeError(
                f"Token endpoint returned status {status} during {grant_type} exchange"
            )

        if status >= 400:
            error_code = _oauth_error_code(response)
            logger.error(f"Token {grant_type} exchange rejected: {status} - {response.text}")
            message = f"Token endpoint rejected {grant_type} grant with status {status}" + (
                f" ({error_code})" if error_code else ""
            )
            # A bare 400 counts as a rejected grant
            if error_code == "invalid_grant" or (status == 400 and error_code is None):
                raise InvalidGrantError(message, status_code=status, error=error_code)
            raise TokenRequestRejectedError(message, status_code=status, error=error_code)

        if status != 200:
            raise MalformedTokenResponseError(
                f"Unexpected status {status} from token endpoint"
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Invalid response from token endpoint: {e}")
            raise MalformedTokenResponseError(
                f"Invalid response from token endpoint: {e}"
            ) from e

    async def aclose(self) -> None:
        """Close the HTTP client if this exchanger created it."""
        if self._owns_client:
            await self.http_client.aclose()


def _oauth_error_code(response: httpx.Response) -> Optional[str]:
    """Extract the RFC 6749 'error' field from an error response, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return None
