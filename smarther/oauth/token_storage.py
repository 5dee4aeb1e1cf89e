"""
Token storage for Smarther OAuth integration.

This module provides the TokenSet value type and file-based token
persistence so an authorization survives process restarts. Tokens are
stored as plaintext JSON readable only by the current user.
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import MalformedTokenResponseError, TokenStorageError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenSet:
    """
    OAuth token set.

    Instances are immutable: a refresh produces a new TokenSet that
    replaces the old one as a whole.

    Attributes:
        access_token: Short-lived bearer token for API calls
        refresh_token: Long-lived token for obtaining new access tokens
        expires_at: When the access token expires (timezone-aware UTC)
        token_type: Token type (typically "Bearer")
        scope: Granted OAuth scopes
    """

    access_token: str
    refresh_token: str
    expires_at: datetime
    token_type: str = "Bearer"
    scope: str = ""

    @property
    def is_expired(self) -> bool:
        """True if the access token has expired."""
        return _utcnow() >= self.expires_at

    def expires_within(self, seconds: float) -> bool:
        """
        Check if token expires within given seconds.

        Args:
            seconds: Safety margin in seconds

        Returns:
            True if the token will expire within the margin, False otherwise
        """
        return _utcnow() + timedelta(seconds=seconds) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenSet":
        """
        Create TokenSet from a dictionary produced by to_dict().

        Raises:
            KeyError: If required fields are missing
            TypeError: If fields have wrong types
            ValueError: If expires_at is not an ISO timestamp
        """
        expires_at = datetime.fromisoformat(data["expires_at"])
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)

        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=expires_at,
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope", ""),
        )

    @classmethod
    def from_token_response(
        cls, data: Any, previous: Optional["TokenSet"] = None
    ) -> "TokenSet":
        """
        Build a TokenSet from a token endpoint JSON response.

        expires_at is computed as now + expires_in. When expires_in is
        missing, the absolute epoch expires_on field is used instead. On a
        refresh response without a refresh_token, the previous one is kept.

        Args:
            data: Decoded JSON response body
            previous: Token set being replaced (refresh only)

        Returns:
            New TokenSet

        Raises:
            MalformedTokenResponseError: If required fields are missing or invalid
        """
        if not isinstance(data, dict):
            raise MalformedTokenResponseError("Token response is not a JSON object")

        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise MalformedTokenResponseError("Token response missing 'access_token'")

        refresh_token = data.get("refresh_token")
        if refresh_token is None and previous is not None:
            refresh_token = previous.refresh_token
        if not isinstance(refresh_token, str) or not refresh_token:
            raise MalformedTokenResponseError("Token response missing 'refresh_token'")

        try:
            if data.get("expires_in") is not None:
                expires_at = _utcnow() + timedelta(seconds=float(data["expires_in"]))
            elif data.get("expires_on") is not None:
                expires_at = datetime.fromtimestamp(
                    float(data["expires_on"]), tz=timezone.utc
                )
            else:
                raise MalformedTokenResponseError(
                    "Token response missing 'expires_in'"
                )
        except (TypeError, ValueError, OverflowError) as e:
            raise MalformedTokenResponseError(
                f"Invalid expiry in token response: {e}"
            ) from e

        default_scope = previous.scope if previous else ""
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope") or default_scope,
        )


class TokenStorage:
    """
    File-based token storage (plaintext JSON, chmod 600).

    Saves go through a temporary file in the same directory followed by
    os.replace(), so a reader never sees a partially written token set.
    """

    def __init__(self, token_file: str):
        """
        Initialize token storage.

        Args:
            token_file: Path to token storage file (~ is expanded)
        """
        self.token_file = Path(os.path.expanduser(token_file))

    def _ensure_directory(self) -> None:
        """Create parent directory if needed."""
        self.token_file.parent.mkdir(parents=True, exist_ok=True)

    def save(self, token_set: TokenSet) -> None:
        """
        Save tokens to file.

        Args:
            token_set: Token set to save

        Raises:
            TokenStorageError: If save operation fails
        """
        tmp_path = None
        try:
            self._ensure_directory()
            fd, tmp_path = tempfile.mkstemp(
                dir=self.token_file.parent, prefix=".tokens-", suffix=".tmp"
            )
            # mkstemp creates the file with mode 0600
            with os.fdopen(fd, "w") as f:
                json.dump(token_set.to_dict(), f, indent=2)
            os.replace(tmp_path, self.token_file)
            tmp_path = None

            logger.info(f"Tokens saved to {self.token_file}")
        except OSError as e:
            logger.error(f"Failed to save tokens: {e}")
            raise TokenStorageError(f"Failed to save tokens: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

    def load(self) -> Optional[TokenSet]:
        """
        Load tokens from file.

        Returns:
            TokenSet if file exists and is valid, None otherwise

        Notes:
            - Returns None if file doesn't exist (normal on first run)
            - Returns None if file is corrupted (logs warning)
        """
        if not self.token_file.exists():
            logger.debug(f"No token file found at {self.token_file}")
            return None

        try:
            with open(self.token_file, "r") as f:
                data = json.load(f)

            token_set = TokenSet.from_dict(data)
            logger.debug(f"Tokens loaded from {self.token_file}")
            return token_set

        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                f"Invalid token file at {self.token_file}, "
                f"will need re-authorization: {e}"
            )
            return None
        except OSError as e:
            logger.warning(f"Could not read token file: {e}")
            return None

    def delete(self) -> bool:
        """
        Delete token file.

        Returns:
            True if file was deleted, False if file didn't exist

        Raises:
            TokenStorageError: If the file exists but cannot be removed
        """
        if self.token_file.exists():
            try:
                self.token_file.unlink()
                logger.info(f"Token file deleted: {self.token_file}")
                return True
            except OSError as e:
                logger.error(f"Failed to delete token file: {e}")
                raise TokenStorageError(f"Failed to delete token file: {e}") from e

        logger.debug(f"Token file does not exist: {self.token_file}")
        return False

    def exists(self) -> bool:
        """True if the token file exists."""
        return self.token_file.exists()
