"""
OAuth callback server for Smarther API integration.

This module provides a short-lived local HTTP server that receives the
OAuth redirect during the authorization flow. The server accepts exactly
one callback, hands its outcome to the waiting flow and shuts down.

IMPORTANT: This server is designed for single-user, interactive use. It
runs only while the authorization flow is waiting for the browser.
"""

import asyncio
import logging
import socket
from dataclasses import dataclass
from enum import Enum
from html import escape
from typing import Callable, Optional, Tuple

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse

from .authorization import AuthorizationRequest, generate_state, open_authorization_url
from .config import SmartherOAuthConfig
from .exceptions import FlowError, ListenerBindError, StateMismatchError

logger = logging.getLogger(__name__)


class CallbackOutcome(Enum):
    """How an authorization flow ended."""

    GRANTED = "granted"
    DENIED = "denied"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class CallbackResult:
    """
    Result of the OAuth callback.

    Attributes:
        outcome: Granted, denied or timed out
        code: Authorization code (granted only)
        state: State nonce echoed by the vendor (granted only)
        error: Error code from OAuth provider (denied only)
        error_description: Human-readable error description (denied only)
    """

    outcome: CallbackOutcome
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None

    @classmethod
    def granted(cls, code: str, state: str) -> "CallbackResult":
        return cls(CallbackOutcome.GRANTED, code=code, state=state)

    @classmethod
    def denied(
        cls, error: str, error_description: Optional[str] = None
    ) -> "CallbackResult":
        return cls(CallbackOutcome.DENIED, error=error, error_description=error_description)

    @classmethod
    def timed_out(cls) -> "CallbackResult":
        return cls(CallbackOutcome.TIMED_OUT)

    @property
    def success(self) -> bool:
        """True if an authorization code was received."""
        return self.outcome is CallbackOutcome.GRANTED


def _page(title: str, heading: str, body: str, color: str) -> str:
    return f"""<html>
    <head><title>{title}</title></head>
    <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 50px auto; padding: 20px;">
        <h1 style="color: {color};">{heading}</h1>
        {body}
        <p style="margin-top: 30px; color: #666;">You can close this window.</p>
    </body>
    </html>"""


class OAuthCallbackServer:
    """
    Local HTTP server to handle the OAuth callback.

    The server:
    1. Binds the callback port (configured, or any free port when 0)
    2. Serves the callback route with uvicorn in a background task
    3. Delivers the first callback to the waiting flow
    4. Answers any later request with "flow already completed"
    5. Releases the port when stopped

    Security:
    - The callback state must match the outstanding request's nonce; a
      mismatch aborts the flow as a potential forgery attempt
    - Single-use (one completion event per server instance)
    """

    def __init__(self, config: SmartherOAuthConfig, expected_state: str):
        """
        Initialize callback server.

        Args:
            config: OAuth configuration with callback host, port and path
            expected_state: State nonce of the outstanding authorization request
        """
        self.config = config
        self.expected_state = expected_state
        self.result: Optional[CallbackResult] = None
        self.port: Optional[int] = None
        self.app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
        self._error: Optional[FlowError] = None
        self._completed = asyncio.Event()
        self._socket: Optional[socket.socket] = None
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional["asyncio.Task[None]"] = None

        self.app.add_api_route(
            self.config.callback_path,
            self._handle_callback,
            methods=["GET"],
            name="oauth_callback",
        )
        self.app.add_api_route(
            "/oauth/status", self._handle_status, methods=["GET"], name="oauth_status"
        )

    @property
    def completed(self) -> bool:
        """True once a completion event has been delivered (or the wait timed out)."""
        return self._completed.is_set()

    @property
    def redirect_uri(self) -> str:
        """Redirect URI matching the bound port (configured port before start)."""
        return self.config.redirect_uri_for_port(self.port or self.config.callback_port)

    def _complete(
        self, result: Optional[CallbackResult] = None, error: Optional[FlowError] = None
    ) -> None:
        self.result = result
        self._error = error
        self._completed.set()

    async def _handle_callback(self, request: Request) -> HTMLResponse:
        """Handle OAuth callback from the vendor."""
        if self.completed:
            logger.warning("Ignoring callback, authorization flow already completed")
            return HTMLResponse(
                _page(
                    "Authorization Closed",
                    "Authorization flow already completed",
                    "<p>This authorization request has already been handled.</p>",
                    "#666",
                ),
                status_code=409,
            )

        logger.info("Received OAuth callback")
        params = request.query_params
        state = params.get("state")

        if state != self.expected_state:
            logger.warning("OAuth callback state mismatch, aborting authorization flow")
            self._complete(
                error=StateMismatchError(
                    "Callback state does not match the authorization request"
                )
            )
            return HTMLResponse(
                _page(
                    "Authorization Failed",
                    "Authorization Failed",
                    "<p>The authorization response could not be verified.</p>",
                    "#d32f2f",
                ),
                status_code=400,
            )

        error = params.get("error")
        if error:
            error_desc = params.get("error_description")
            logger.error(f"OAuth error: {error} - {error_desc or 'no description'}")
            self._complete(CallbackResult.denied(error, error_desc))
            return HTMLResponse(
                _page(
                    "Authorization Failed",
                    "Authorization Failed",
                    f"<p><strong>Error:</strong> {escape(error)}</p>"
                    f"<p><strong>Description:</strong> {escape(error_desc or 'Unknown error')}</p>",
                    "#d32f2f",
                ),
                status_code=400,
            )

        code = params.get("code")
        if not code:
            logger.error("No authorization code in callback")
            self._complete(
                CallbackResult.denied("missing_code", "No authorization code received")
            )
            return HTMLResponse(
                _page(
                    "Authorization Failed",
                    "Authorization Failed",
                    "<p>No authorization code received from Legrand.</p>",
                    "#d32f2f",
                ),
                status_code=400,
            )

        logger.info("Authorization code received successfully")
        self._complete(CallbackResult.granted(code, state))
        return HTMLResponse(
            _page(
                "Authorization Successful",
                "Authorization Successful!",
                "<p>Your application has been authorized to access your Smarther devices.</p>",
                "#4caf50",
            ),
            status_code=200,
        )

    async def _handle_status(self) -> JSONResponse:
        """Status endpoint for debugging."""
        return JSONResponse(
            {
                "status": "completed" if self.completed else "running",
                "waiting_for": "oauth_callback",
            }
        )

    def _bind(self) -> socket.socket:
        host = self.config.callback_host
        port = self.config.callback_port
        try:
            family = socket.AF_INET6 if ":" in host else socket.AF_INET
            sock = socket.socket(family, socket.SOCK_STREAM)
        except OSError as e:
            raise ListenerBindError(f"Could not create callback socket: {e}") from e

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
        except OSError as e:
            sock.close()
            raise ListenerBindError(
                f"Could not bind callback listener to {host}:{port}: {e}"
            ) from e
        return sock

    async def start(self) -> None:
        """
        Bind the callback port and start serving in a background task.

        Raises:
            ListenerBindError: If the port cannot be bound
        """
        if self._serve_task is not None:
            raise RuntimeError("Callback server already started")

        self._socket = self._bind()
        self.port = self._socket.getsockname()[1]

        uv_config = uvicorn.Config(
            self.app,
            log_level="warning",
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=2,
        )
        self._server = uvicorn.Server(uv_config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[self._socket]))

        # Wait for startup so the browser never hits a closed port
        while not self._server.started:
            if self._serve_task.done():
                self._release_socket()
                exc = self._serve_task.exception()
                raise ListenerBindError(f"Callback server failed to start: {exc}")
            await asyncio.sleep(0.01)

        logger.info(
            f"OAuth callback server listening on "
            f"{self.config.callback_host}:{self.port}{self.config.callback_path}"
        )

    async def wait_for_callback(self, timeout: Optional[float] = None) -> CallbackResult:
        """
        Wait for the OAuth callback.

        Args:
            timeout: Maximum seconds to wait (default: config.callback_timeout_seconds)

        Returns:
            CallbackResult (granted, denied or timed out)

        Raises:
            StateMismatchError: If the callback carried an unexpected state
        """
        if timeout is None:
            timeout = self.config.callback_timeout_seconds
        logger.info(f"Waiting for OAuth callback (timeout: {timeout}s)")

        try:
            await asyncio.wait_for(self._completed.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timeout waiting for callback after {timeout}s")
            self._complete(CallbackResult.timed_out())

        if self._error is not None:
            raise self._error
        if self.result is None:
            raise FlowError("Callback server completed without a result")
        return self.result

    async def stop(self) -> None:
        """Stop the callback server and release the port. Safe to call twice."""
        if self._server is not None and self._serve_task is not None:
            logger.info("OAuth callback server shutting down")
            self._server.should_exit = True
            try:
                await self._serve_task
            except asyncio.CancelledError:
                if not self._serve_task.cancelled():
                    raise
            finally:
                self._server = None
        self._release_socket()

    def _release_socket(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    async def __aenter__(self) -> "OAuthCallbackServer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


def _print_authorization_banner(url: str) -> None:
    print("\n" + "=" * 70)
    print("SMARTHER OAUTH AUTHORIZATION")
    print("=" * 70)
    print("\nPlease authorize the application by visiting:")
    print(f"\n  {url}\n")
    print("Waiting for authorization...")
    print("=" * 70 + "\n")


async def run_authorization_flow(
    config: SmartherOAuthConfig,
    open_browser: bool = True,
    timeout: Optional[float] = None,
    on_url: Optional[Callable[[str], None]] = None,
) -> Tuple[AuthorizationRequest, CallbackResult]:
    """
    Run the interactive part of the OAuth authorization flow.

    This function:
    1. Generates a state nonce and binds the callback listener
    2. Builds the authorization URL and surfaces it via on_url
    3. Opens the browser (the URL stays available if that fails)
    4. Waits for the user to authorize
    5. Releases the listener on every exit path

    Args:
        config: OAuth configuration
        open_browser: Whether to automatically open browser (default: True)
        timeout: Seconds to wait for callback (default: from config)
        on_url: Receives the authorization URL (default: print a banner)

    Returns:
        Tuple of the AuthorizationRequest and its CallbackResult

    Raises:
        ListenerBindError: If the callback port cannot be bound
        StateMismatchError: If the callback state did not match
    """
    state = generate_state()

    async with OAuthCallbackServer(config, expected_state=state) as server:
        auth_request = AuthorizationRequest(
            client_id=config.client_id,
            redirect_uri=server.redirect_uri,
            scope=config.scope,
            state=state,
        )
        auth_url = auth_request.url(config.authorization_url)
        logger.debug(f"Generated authorization URL: {auth_url}")

        (on_url or _print_authorization_banner)(auth_url)

        if open_browser:
            await asyncio.get_running_loop().run_in_executor(
                None, open_authorization_url, auth_url
            )

        result = await server.wait_for_callback(timeout)

    if result.success:
        logger.info("Authorization flow completed successfully")
    else:
        logger.error(
            f"Authorization flow failed: {result.outcome.value} "
            f"{result.error or ''} {result.error_description or ''}".rstrip()
        )
    return auth_request, result
