"""
OAuth 2.0 module for Smarther API integration.

This module provides the OAuth 2.0 Authorization Code flow for
authenticating with the Legrand Smarther API: a local callback listener,
token exchange, token persistence and automatic, single-flight refresh.

Public API:
    SmartherOAuthConfig: OAuth configuration management
    AuthorizationRequest: One outstanding authorization request
    OAuthCallbackServer: One-shot local callback listener
    TokenSet: Token data structure
    TokenStorage: File-based token persistence
    HttpTokenExchanger: Token endpoint client
    TokenManager: Token lifecycle management
    OAuthCoordinator: High-level OAuth interface
"""

from .auth_server import (
    CallbackOutcome,
    CallbackResult,
    OAuthCallbackServer,
    run_authorization_flow,
)
from .authorization import (
    AuthorizationRequest,
    build_authorization_url,
    generate_state,
    open_authorization_url,
)
from .config import SmartherOAuthConfig
from .coordinator import OAuthCoordinator
from .exceptions import (
    AuthenticationFailedError,
    AuthError,
    AuthorizationDeniedError,
    AuthorizationTimeoutError,
    ConfigurationError,
    FlowError,
    InvalidGrantError,
    ListenerBindError,
    MalformedTokenResponseError,
    NetworkExchangeError,
    NoTokenError,
    ReauthorizationRequiredError,
    RefreshFailedError,
    SmartherOAuthError,
    StateMismatchError,
    TokenExchangeError,
    TokenRequestRejectedError,
    TokenStorageError,
)
from .token_exchanger import BaseTokenExchanger, HttpTokenExchanger
from .token_manager import TokenManager, TokenState
from .token_storage import TokenSet, TokenStorage

__all__ = [
    # Configuration
    "SmartherOAuthConfig",
    # Authorization request
    "AuthorizationRequest",
    "build_authorization_url",
    "generate_state",
    "open_authorization_url",
    # Callback server
    "OAuthCallbackServer",
    "CallbackOutcome",
    "CallbackResult",
    "run_authorization_flow",
    # Tokens
    "TokenSet",
    "TokenStorage",
    "BaseTokenExchanger",
    "HttpTokenExchanger",
    "TokenManager",
    "TokenState",
    # Coordinator
    "OAuthCoordinator",
    # Exceptions
    "SmartherOAuthError",
    "ConfigurationError",
    "TokenStorageError",
    "FlowError",
    "StateMismatchError",
    "AuthorizationDeniedError",
    "AuthorizationTimeoutError",
    "ListenerBindError",
    "TokenExchangeError",
    "NetworkExchangeError",
    "InvalidGrantError",
    "TokenRequestRejectedError",
    "MalformedTokenResponseError",
    "AuthError",
    "NoTokenError",
    "RefreshFailedError",
    "ReauthorizationRequiredError",
    "AuthenticationFailedError",
]
