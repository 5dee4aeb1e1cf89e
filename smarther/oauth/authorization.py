"""
Authorization request construction for the Smarther OAuth flow.

Generates the anti-forgery state nonce, builds the vendor authorization
URL and opens it in the user's browser.
"""

import logging
import secrets
import webbrowser
from dataclasses import dataclass
from urllib.parse import urlencode

from .config import AUTH_URL

logger = logging.getLogger(__name__)


def generate_state() -> str:
    """
    Generate an unguessable state nonce for one authorization request.

    Returns:
        URL-safe random string (256 bits of entropy)
    """
    return secrets.token_urlsafe(32)


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    authorization_url: str = AUTH_URL,
) -> str:
    """
    Build the vendor authorization URL.

    Args:
        client_id: Application client ID
        redirect_uri: Callback URL the vendor redirects back to
        scope: Space separated scopes (omitted from the URL when empty)
        state: State nonce correlating the request with its callback
        authorization_url: Authorization endpoint

    Returns:
        Complete authorization URL with percent-encoded query parameters
    """
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
    }
    if scope:
        params["scope"] = scope
    params["state"] = state

    return f"{authorization_url}?{urlencode(params)}"


@dataclass(frozen=True)
class AuthorizationRequest:
    """
    A single outstanding authorization request.

    Attributes:
        client_id: Application client ID
        redirect_uri: Callback URL registered for this request
        scope: Requested scopes
        state: State nonce expected back in the callback
    """

    client_id: str
    redirect_uri: str
    scope: str
    state: str

    def url(self, authorization_url: str = AUTH_URL) -> str:
        """Authorization URL for this request."""
        return build_authorization_url(
            self.client_id,
            self.redirect_uri,
            self.scope,
            self.state,
            authorization_url=authorization_url,
        )


def open_authorization_url(url: str) -> bool:
    """
    Open the authorization URL in the user's default browser.

    Args:
        url: Authorization URL

    Returns:
        True if a browser was launched, False otherwise (the caller should
        show the URL so the user can open it manually)
    """
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as e:
        logger.warning(f"Could not open browser automatically: {e}")
        return False

    if not opened:
        logger.warning("No browser available, open the authorization URL manually")
    return opened
