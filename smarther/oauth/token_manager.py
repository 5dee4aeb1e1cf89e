"""
Token manager for Smarther OAuth integration.

This module manages the OAuth token lifecycle including:
- Token exchange (authorization code -> access/refresh tokens)
- Automatic refresh before expiry
- Refresh coalescing (at most one refresh exchange in flight)
- Token validation and status checks

Refresh tokens are typically single-use, so concurrent callers that find
the access token near expiry must share one refresh exchange instead of
racing each other with the same refresh token.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .exceptions import (
    InvalidGrantError,
    NoTokenError,
    ReauthorizationRequiredError,
    RefreshFailedError,
    TokenExchangeError,
    TokenStorageError,
)
from .token_exchanger import BaseTokenExchanger
from .token_storage import TokenSet, TokenStorage

logger = logging.getLogger(__name__)


class TokenState(Enum):
    """Authentication state of a TokenManager."""

    UNAUTHENTICATED = "unauthenticated"
    VALID = "valid"
    REFRESHING = "refreshing"


class TokenManager:
    """
    Owns the current TokenSet and hands out valid access tokens.

    A single instance is shared by every API client in the process. All
    methods must be called from the same event loop.

    Responsibilities:
    - Exchange authorization codes for tokens
    - Refresh access tokens before expiry, one exchange at a time
    - Provide valid access tokens to API clients
    - Track token status
    """

    def __init__(
        self,
        exchanger: BaseTokenExchanger,
        storage: Optional[TokenStorage] = None,
        refresh_buffer_seconds: float = 60,
    ):
        """
        Initialize token manager.

        Args:
            exchanger: Token endpoint exchanger
            storage: Token persistence (tokens are kept in memory only if None)
            refresh_buffer_seconds: Refresh when less than this many seconds remain
        """
        self.exchanger = exchanger
        self.storage = storage
        self.refresh_buffer_seconds = refresh_buffer_seconds
        self._tokens: Optional[TokenSet] = None
        self._loaded = storage is None
        self._reauthorization_required = False
        self._refresh_task: Optional["asyncio.Task[TokenSet]"] = None
        self._generation = 0

    @property
    def state(self) -> TokenState:
        """Current authentication state."""
        if self._refresh_task is not None:
            return TokenState.REFRESHING
        if self._get_current_tokens() is None:
            return TokenState.UNAUTHENTICATED
        return TokenState.VALID

    @property
    def tokens(self) -> Optional[TokenSet]:
        """Current token set, if any."""
        return self._get_current_tokens()

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        """
        Exchange an authorization code and install the resulting tokens.

        Args:
            code: Authorization code from the callback
            redirect_uri: Redirect URI used in the authorization request

        Returns:
            The new TokenSet

        Raises:
            TokenExchangeError: If the exchange fails (tokens are unchanged)
        """
        token_set = await self.exchanger.exchange_code(code, redirect_uri)
        # A refresh still in flight must not replace or clear these tokens
        self._generation += 1
        self._install(token_set)
        self._reauthorization_required = False
        logger.info("Authorization code exchanged, tokens installed")
        return token_set

    async def get_valid_token(self) -> str:
        """
        Get a valid access token, refreshing if necessary.

        Returns immediately while the token is outside the refresh margin.
        Otherwise triggers a refresh or waits for the one already in flight.

        Returns:
            Valid access token string

        Raises:
            NoTokenError: No tokens (run the authorization flow first)
            ReauthorizationRequiredError: Refresh token was rejected
            RefreshFailedError: Transient refresh failure (old tokens kept)
        """
        tokens = self._require_tokens()

        if not tokens.expires_within(self.refresh_buffer_seconds):
            return tokens.access_token

        logger.info(
            f"Token expires soon (within {self.refresh_buffer_seconds}s), refreshing"
        )
        tokens = await self._join_refresh(tokens)
        return tokens.access_token

    async def force_refresh(self, rejected_access_token: Optional[str] = None) -> TokenSet:
        """
        Refresh regardless of the recorded expiry.

        Used when the API rejects a token the manager still considers valid.
        If the rejected token has already been replaced by another caller's
        refresh, the current tokens are returned without a new exchange.

        Args:
            rejected_access_token: Access token the API rejected

        Returns:
            Current TokenSet after the refresh

        Raises:
            NoTokenError: No tokens (run the authorization flow first)
            ReauthorizationRequiredError: Refresh token was rejected
            RefreshFailedError: Transient refresh failure (old tokens kept)
        """
        tokens = self._require_tokens()

        if (
            self._refresh_task is None
            and rejected_access_token is not None
            and tokens.access_token != rejected_access_token
        ):
            logger.debug("Rejected token already superseded, skipping refresh")
            return tokens

        logger.info("Forcing token refresh")
        return await self._join_refresh(tokens)

    def is_authorized(self) -> bool:
        """True if we have tokens (valid or refreshable)."""
        return self._get_current_tokens() is not None

    def get_token_status(self) -> Dict[str, Any]:
        """
        Get current token status for diagnostics.

        Returns:
            Dictionary with token status information:
            - authorized: Whether we have tokens
            - state: Current TokenState value
            - expired: Whether access token is expired (if authorized)
            - expires_at: When access token expires (if authorized)
            - expires_in_seconds: Seconds until expiry (if authorized)
            - scope: OAuth scopes granted (if authorized)
        """
        tokens = self._get_current_tokens()

        if not tokens:
            message = (
                "Refresh token rejected, re-authorization required"
                if self._reauthorization_required
                else "No tokens stored"
            )
            return {
                "authorized": False,
                "state": self.state.value,
                "message": message,
            }

        expires_in = (tokens.expires_at - datetime.now(timezone.utc)).total_seconds()

        return {
            "authorized": True,
            "state": self.state.value,
            "expired": tokens.is_expired,
            "expires_at": tokens.expires_at.isoformat(),
            "expires_in_seconds": max(0, expires_in),
            "scope": tokens.scope,
        }

    def revoke(self) -> None:
        """
        Delete tokens locally (explicit logout).

        This does NOT revoke tokens on the vendor's servers. After
        revocation, the authorization flow must be run again.
        """
        self._generation += 1
        self._reauthorization_required = False
        self._clear()
        logger.info("Tokens revoked (local)")

    def _require_tokens(self) -> TokenSet:
        tokens = self._get_current_tokens()
        if tokens is not None:
            return tokens
        if self._reauthorization_required:
            raise ReauthorizationRequiredError(
                "Refresh token is no longer valid. Run the authorization flow again."
            )
        raise NoTokenError("No tokens available. Run authorization flow first.")

    async def _join_refresh(self, current: TokenSet) -> TokenSet:
        """Start a refresh unless one is in flight, then wait for its outcome."""
        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(
                self._run_refresh(current, self._generation)
            )
        else:
            logger.debug("Refresh already in flight, waiting for it")

        # Shield so a cancelled waiter does not cancel the shared exchange
        return await asyncio.shield(self._refresh_task)

    async def _run_refresh(self, current: TokenSet, generation: int) -> TokenSet:
        try:
            try:
                new_tokens = await self.exchanger.exchange_refresh(
                    current.refresh_token, previous=current
                )
            except InvalidGrantError as e:
                if generation != self._generation:
                    logger.info("Rejected refresh superseded by a new authorization")
                    return self._require_tokens()
                logger.error(f"Refresh token rejected, re-authorization required: {e}")
                self._reauthorization_required = True
                try:
                    self._clear()
                except TokenStorageError as storage_error:
                    logger.error(f"Could not delete rejected tokens: {storage_error}")
                raise ReauthorizationRequiredError(
                    "Refresh token is no longer valid. Run the authorization flow again."
                ) from e
            except TokenExchangeError as e:
                if generation != self._generation:
                    logger.info("Failed refresh superseded by a new authorization")
                    return self._require_tokens()
                logger.warning(f"Token refresh failed, keeping current tokens: {e}")
                raise RefreshFailedError(f"Token refresh failed: {e}") from e

            if generation != self._generation:
                logger.info("Discarding refresh result superseded by a new authorization")
                return self._require_tokens()

            self._install(new_tokens)
            logger.info("Successfully refreshed tokens")
            return new_tokens
        finally:
            self._refresh_task = None

    def _install(self, token_set: TokenSet) -> None:
        """
        Replace the current tokens as a whole and persist them.

        The in-memory set is authoritative: the grant that produced it has
        already been spent, so a failed save is logged and not raised.
        """
        self._tokens = token_set
        self._loaded = True
        if self.storage is not None:
            try:
                self.storage.save(token_set)
            except TokenStorageError as e:
                logger.error(f"Tokens kept in memory only, could not persist them: {e}")

    def _clear(self) -> None:
        self._tokens = None
        self._loaded = True
        if self.storage is not None:
            self.storage.delete()

    def _get_current_tokens(self) -> Optional[TokenSet]:
        """Get current tokens from memory, loading from storage once."""
        if not self._loaded:
            self._loaded = True
            if self.storage is not None:
                self._tokens = self.storage.load()
        return self._tokens
