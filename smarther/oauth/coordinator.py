"""
OAuth coordinator for high-level OAuth operations.

This module provides the main interface for OAuth operations in the
application. It coordinates the authorization flow, token management,
and provides simple methods for obtaining valid access tokens.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from .auth_server import CallbackOutcome, run_authorization_flow
from .config import SmartherOAuthConfig
from .exceptions import AuthorizationDeniedError, AuthorizationTimeoutError
from .token_exchanger import BaseTokenExchanger, HttpTokenExchanger
from .token_manager import TokenManager
from .token_storage import TokenSet, TokenStorage

if TYPE_CHECKING:
    from ..api.client import SmartherClient

logger = logging.getLogger(__name__)


class OAuthCoordinator:
    """
    High-level coordinator for OAuth operations.

    This is the main interface that applications should use for OAuth.
    It owns the single TokenManager shared by every API client it creates.

    Example:
        coordinator = OAuthCoordinator()
        await coordinator.ensure_authorized()
        async with coordinator.create_client() as client:
            plants = await client.get("/plants")
    """

    def __init__(
        self,
        config: Optional[SmartherOAuthConfig] = None,
        storage: Optional[TokenStorage] = None,
        exchanger: Optional[BaseTokenExchanger] = None,
    ):
        """
        Initialize OAuth coordinator.

        Args:
            config: OAuth configuration (loads from environment if not provided)
            storage: Token storage (file storage at config.token_file if not provided)
            exchanger: Token exchanger (HTTP exchanger if not provided)
        """
        self.config = config or SmartherOAuthConfig.from_env()
        self.storage = storage or TokenStorage(self.config.token_file)
        self.exchanger = exchanger or HttpTokenExchanger(self.config)
        self.token_manager = TokenManager(
            self.exchanger,
            self.storage,
            refresh_buffer_seconds=self.config.refresh_buffer_seconds,
        )

    async def ensure_authorized(self, auto_open_browser: bool = True) -> bool:
        """
        Ensure we have tokens, running the authorization flow if needed.

        Args:
            auto_open_browser: Whether to auto-open browser for auth

        Returns:
            True once authorized

        Raises:
            FlowError: If the authorization flow fails
            TokenExchangeError: If the code exchange fails
        """
        if self.token_manager.is_authorized():
            logger.info("Already authorized")
            return True

        logger.info("No valid tokens found, starting authorization flow")
        await self.run_authorization_flow(auto_open_browser)
        return True

    async def run_authorization_flow(
        self, open_browser: bool = True, timeout: Optional[float] = None
    ) -> TokenSet:
        """
        Run the complete OAuth authorization flow.

        This orchestrates the full authorization process:
        1. Starts the local callback listener
        2. Opens browser for user authorization
        3. Receives authorization code from callback
        4. Exchanges code for access and refresh tokens
        5. Saves tokens to storage

        Args:
            open_browser: Whether to automatically open browser
            timeout: Seconds to wait for the callback (default: from config)

        Returns:
            The new TokenSet

        Raises:
            ListenerBindError: If the callback port cannot be bound
            StateMismatchError: If the callback state did not match
            AuthorizationDeniedError: If authorization was denied
            AuthorizationTimeoutError: If no callback arrived in time
            TokenExchangeError: If the code exchange fails
        """
        auth_request, result = await run_authorization_flow(
            self.config, open_browser=open_browser, timeout=timeout
        )

        if result.outcome is CallbackOutcome.TIMED_OUT:
            raise AuthorizationTimeoutError(
                "No callback received in time. "
                "Please ensure you completed the authorization in your browser."
            )

        if result.outcome is CallbackOutcome.DENIED:
            raise AuthorizationDeniedError(
                result.error or "access_denied", result.error_description
            )

        token_set = await self.token_manager.exchange_code(
            result.code, auth_request.redirect_uri
        )
        logger.info("Authorization complete! Tokens saved successfully.")
        return token_set

    async def get_access_token(self) -> str:
        """
        Get a valid access token for API calls.

        Raises:
            AuthError: If no usable token can be provided
        """
        return await self.token_manager.get_valid_token()

    async def get_authorization_header(self) -> Dict[str, str]:
        """
        Get headers for an authenticated API request.

        Returns:
            Dict with the Authorization header, plus the subscription key
            header when one is configured

        Raises:
            AuthError: If no usable token can be provided
        """
        token = await self.get_access_token()
        headers = {"Authorization": f"Bearer {token}"}
        if self.config.subscription_key:
            headers["Ocp-Apim-Subscription-Key"] = self.config.subscription_key
        return headers

    def create_client(self, **kwargs: Any) -> "SmartherClient":
        """
        Create an API client sharing this coordinator's token manager.

        Args:
            **kwargs: Extra SmartherClient arguments

        Returns:
            SmartherClient instance
        """
        from ..api.client import SmartherClient

        return SmartherClient(
            self.token_manager,
            subscription_key=self.config.subscription_key,
            base_url=self.config.api_url,
            timeout=self.config.request_timeout_seconds,
            **kwargs,
        )

    def is_authorized(self) -> bool:
        """True if we have valid (or refreshable) tokens."""
        return self.token_manager.is_authorized()

    def get_status(self) -> Dict[str, Any]:
        """
        Get current authorization status for diagnostics.

        Example:
            status = coordinator.get_status()
            if status["authorized"]:
                print(f"Token expires in {status['expires_in_seconds']} seconds")
        """
        return self.token_manager.get_token_status()

    def revoke(self) -> None:
        """
        Revoke current authorization.

        This deletes the locally stored tokens. The user will need to
        re-authorize before making API calls again.
        """
        self.token_manager.revoke()
        logger.info("Authorization revoked locally. Re-authorization required.")

    async def aclose(self) -> None:
        """Release HTTP resources held by the token exchanger."""
        await self.exchanger.aclose()
