"""
Smarther API client with OAuth authentication.

This module provides an authenticated HTTP client for the Smarther API.
It handles:

- Attaching a valid bearer token (refreshed transparently) to each request
- One forced refresh and retry when the API rejects a token
- Error handling and logging

Authentication failures always surface as AuthError subclasses, so callers
never need to inspect raw 401 responses.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ..oauth.config import API_URL
from ..oauth.exceptions import AuthenticationFailedError
from ..oauth.token_manager import TokenManager
from .exceptions import SmartherAPIError, SmartherConnectionError

logger = logging.getLogger(__name__)

# Responses meaning the bearer token was not accepted
AUTH_FAILURE_STATUS_CODES = frozenset({401})


class SmartherClient:
    """
    Authenticated HTTP client for the Smarther API.

    Example:
        coordinator = OAuthCoordinator()
        async with coordinator.create_client() as client:
            plants = await client.get("/plants")
    """

    def __init__(
        self,
        token_manager: TokenManager,
        subscription_key: str = "",
        base_url: str = API_URL,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Smarther API client.

        Args:
            token_manager: Shared token manager providing access tokens
            subscription_key: Value for the Ocp-Apim-Subscription-Key header
            base_url: API base URL
            timeout: Request timeout in seconds
            http_client: HTTP client to use (creates and owns one if not provided)
        """
        self.token_manager = token_manager
        self.subscription_key = subscription_key
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

        logger.info("SmartherClient initialized")

    def _get_full_url(self, endpoint: str) -> str:
        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"
        return f"{self.base_url}{endpoint}"

    def _build_headers(self, access_token: str, has_body: bool) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        if self.subscription_key:
            headers["Ocp-Apim-Subscription-Key"] = self.subscription_key
        if has_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        access_token: str,
        params: Optional[Dict[str, Any]],
        json_data: Any,
    ) -> httpx.Response:
        try:
            return await self.http_client.request(
                method,
                url,
                headers=self._build_headers(access_token, json_data is not None),
                params=params,
                json=json_data,
            )
        except httpx.RequestError as e:
            logger.error(f"Network error calling {method} {url}: {e}")
            raise SmartherConnectionError(f"Network error: {e}") from e

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Any = None,
    ) -> httpx.Response:
        """
        Make authenticated HTTP request to the Smarther API.

        If the API rejects the token, the token is refreshed once (even if
        it looked valid locally) and the request is retried once.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path (e.g., "/plants")
            params: Query parameters
            json_data: JSON request body

        Returns:
            Successful response

        Raises:
            AuthError: If no token is available, refresh fails, or the API
                       rejects the refreshed token as well
            SmartherConnectionError: On transport failure
            SmartherAPIError: For other non-success responses
        """
        url = self._get_full_url(endpoint)
        logger.debug(f"{method} {url}")

        access_token = await self.token_manager.get_valid_token()
        response = await self._send(method, url, access_token, params, json_data)

        if response.status_code in AUTH_FAILURE_STATUS_CODES:
            logger.warning(
                f"Authentication rejected ({response.status_code}), "
                f"refreshing token and retrying once"
            )
            token_set = await self.token_manager.force_refresh(access_token)
            response = await self._send(
                method, url, token_set.access_token, params, json_data
            )

            if response.status_code in AUTH_FAILURE_STATUS_CODES:
                logger.error(
                    f"Authentication failed after token refresh ({response.status_code})"
                )
                raise AuthenticationFailedError(
                    "Smarther API rejected the refreshed access token. "
                    "Re-run the authorization flow."
                )

        if not response.is_success:
            logger.error(f"API error ({response.status_code}): {response.text}")
            raise SmartherAPIError(
                f"Smarther API error ({response.status_code})",
                status_code=response.status_code,
                detail=response.text,
            )

        logger.debug(f"Response: {response.status_code}")
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise SmartherAPIError(
                f"Invalid JSON in API response: {e}",
                status_code=response.status_code,
                detail=response.text,
            ) from e

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make authenticated GET request and return the decoded JSON body."""
        response = await self.request("GET", endpoint, params=params)
        return self._decode(response)

    async def post(
        self,
        endpoint: str,
        json_data: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make authenticated POST request and return the decoded JSON body."""
        response = await self.request("POST", endpoint, params=params, json_data=json_data)
        return self._decode(response)

    async def put(
        self,
        endpoint: str,
        json_data: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make authenticated PUT request and return the decoded JSON body."""
        response = await self.request("PUT", endpoint, params=params, json_data=json_data)
        return self._decode(response)

    async def delete(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make authenticated DELETE request and return the decoded JSON body."""
        response = await self.request("DELETE", endpoint, params=params)
        return self._decode(response)

    async def aclose(self) -> None:
        """Close the HTTP client if this client created it."""
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "SmartherClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
