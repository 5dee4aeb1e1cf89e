"""
OAuth configuration for Smarther API integration.

This module provides configuration management for OAuth 2.0 authentication
with the Legrand Smarther API. Configuration can be loaded from environment
variables or provided programmatically.
"""

import os
from dataclasses import dataclass
from typing import Optional

from .exceptions import ConfigurationError

AUTH_URL = "https://partners-login.eliotbylegrand.com/authorize"
TOKEN_URL = "https://partners-login.eliotbylegrand.com/token"
API_URL = "https://api.developer.legrand.com/smarther/v2.0"

DEFAULT_CALLBACK_PORT = 23784
DEFAULT_TOKEN_FILE = "~/.smarther/tokens.json"


@dataclass
class SmartherOAuthConfig:
    """
    Configuration for Smarther OAuth 2.0.

    Attributes:
        client_id: Application client ID from the Legrand developer portal
        client_secret: Application client secret from the developer portal
        subscription_key: API subscription key sent with every API request
        callback_host: Interface the callback listener binds to
        callback_port: Port for the callback listener (0 picks a free port)
        callback_path: URL path for the callback
        public_base_uri: Externally visible base URI for the redirect, when
                         the listener sits behind a proxy or port forward
        scope: Space separated OAuth scopes (empty for vendor default)
        authorization_url: Smarther OAuth authorization endpoint
        token_url: Smarther OAuth token endpoint
        api_url: Base URL of the Smarther API
        token_file: Path to token storage file
        refresh_buffer_seconds: Refresh tokens this many seconds before expiry
        callback_timeout_seconds: How long to wait for the user to authorize
        request_timeout_seconds: Timeout for token endpoint and API requests
    """

    # Required - from the Legrand developer portal
    client_id: str
    client_secret: str
    subscription_key: str = ""

    # Callback configuration
    callback_host: str = "localhost"
    callback_port: int = DEFAULT_CALLBACK_PORT
    callback_path: str = "/tokens"
    public_base_uri: Optional[str] = None
    scope: str = ""

    # Smarther endpoints
    authorization_url: str = AUTH_URL
    token_url: str = TOKEN_URL
    api_url: str = API_URL

    token_file: str = DEFAULT_TOKEN_FILE

    refresh_buffer_seconds: int = 60
    callback_timeout_seconds: float = 300.0
    request_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.client_id:
            raise ConfigurationError("client_id cannot be empty")

        if not self.client_secret:
            raise ConfigurationError("client_secret cannot be empty")

        if not isinstance(self.callback_port, int) or not (
            0 <= self.callback_port <= 65535
        ):
            raise ConfigurationError(
                f"callback_port must be between 0 and 65535, got {self.callback_port}"
            )

        if not self.callback_path.startswith("/"):
            raise ConfigurationError(
                f"callback_path must start with '/', got {self.callback_path!r}"
            )

        if self.refresh_buffer_seconds < 0:
            raise ConfigurationError("refresh_buffer_seconds cannot be negative")

        if self.callback_timeout_seconds <= 0:
            raise ConfigurationError("callback_timeout_seconds must be positive")

        if self.request_timeout_seconds <= 0:
            raise ConfigurationError("request_timeout_seconds must be positive")

    def redirect_uri_for_port(self, port: int) -> str:
        """
        Callback URL for a listener bound to the given port.

        Args:
            port: Port the callback listener is actually bound to

        Returns:
            Complete redirect URI (e.g., http://localhost:23784/tokens)
        """
        if self.public_base_uri:
            return f"{self.public_base_uri.rstrip('/')}{self.callback_path}"
        return f"http://{self.callback_host}:{port}{self.callback_path}"

    @property
    def redirect_uri(self) -> str:
        """
        Full callback URL for OAuth redirect on the configured port.

        Returns:
            Complete callback URL (e.g., http://localhost:23784/tokens)
        """
        return self.redirect_uri_for_port(self.callback_port)

    @property
    def token_path(self) -> str:
        """Token file path with the user directory expanded."""
        return os.path.expanduser(self.token_file)

    @classmethod
    def from_env(cls) -> "SmartherOAuthConfig":
        """
        Load configuration from environment variables.

        Required environment variables:
            SMARTHER_CLIENT_ID: Application client ID
            SMARTHER_CLIENT_SECRET: Application client secret

        Optional environment variables:
            SMARTHER_SUBSCRIPTION_KEY: API subscription key
            SMARTHER_CALLBACK_HOST: Callback listener host (default: localhost)
            SMARTHER_CALLBACK_PORT: Callback listener port (default: 23784)
            SMARTHER_CALLBACK_PATH: Callback path (default: /tokens)
            SMARTHER_PUBLIC_BASE_URI: External base URI for the redirect
            SMARTHER_SCOPE: OAuth scopes
            SMARTHER_TOKEN_FILE: Token file path (default: ~/.smarther/tokens.json)
            SMARTHER_REFRESH_BUFFER_SECONDS: Refresh margin (default: 60)

        Returns:
            SmartherOAuthConfig instance

        Raises:
            ConfigurationError: If required environment variables are missing
                                or a numeric variable cannot be parsed
        """
        client_id = os.environ.get("SMARTHER_CLIENT_ID")
        client_secret = os.environ.get("SMARTHER_CLIENT_SECRET")

        if not client_id or not client_secret:
            raise ConfigurationError(
                "Missing Smarther OAuth credentials. Set environment variables:\n"
                "  SMARTHER_CLIENT_ID=your_client_id\n"
                "  SMARTHER_CLIENT_SECRET=your_client_secret\n"
                "\n"
                "Get credentials from: https://developer.legrand.com"
            )

        try:
            callback_port = int(
                os.environ.get("SMARTHER_CALLBACK_PORT", str(DEFAULT_CALLBACK_PORT))
            )
            refresh_buffer = int(os.environ.get("SMARTHER_REFRESH_BUFFER_SECONDS", "60"))
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e

        return cls(
            client_id=client_id,
            client_secret=client_secret,
            subscription_key=os.environ.get("SMARTHER_SUBSCRIPTION_KEY", ""),
            callback_host=os.environ.get("SMARTHER_CALLBACK_HOST", "localhost"),
            callback_port=callback_port,
            callback_path=os.environ.get("SMARTHER_CALLBACK_PATH", "/tokens"),
            public_base_uri=os.environ.get("SMARTHER_PUBLIC_BASE_URI") or None,
            scope=os.environ.get("SMARTHER_SCOPE", ""),
            token_file=os.environ.get("SMARTHER_TOKEN_FILE", DEFAULT_TOKEN_FILE),
            refresh_buffer_seconds=refresh_buffer,
        )
