"""Tests for OAuth configuration module."""

import os
from unittest import mock

import pytest

from smarther.oauth.config import AUTH_URL, TOKEN_URL, SmartherOAuthConfig
from smarther.oauth.exceptions import ConfigurationError


class TestSmartherOAuthConfig:
    """Tests for SmartherOAuthConfig class."""

    def test_config_with_required_params(self):
        """Config can be created with just required parameters."""
        config = SmartherOAuthConfig(
            client_id="test_client_id", client_secret="test_client_secret"
        )

        assert config.client_id == "test_client_id"
        assert config.client_secret == "test_client_secret"
        assert config.subscription_key == ""
        assert config.callback_host == "localhost"
        assert config.callback_port == 23784
        assert config.callback_path == "/tokens"
        assert config.authorization_url == AUTH_URL
        assert config.token_url == TOKEN_URL
        assert config.token_file == "~/.smarther/tokens.json"
        assert config.refresh_buffer_seconds == 60

    def test_config_with_all_params(self):
        """Config can be created with all parameters."""
        config = SmartherOAuthConfig(
            client_id="test_id",
            client_secret="test_secret",
            subscription_key="sub_key",
            callback_host="127.0.0.1",
            callback_port=9000,
            callback_path="/custom/callback",
            scope="comfort.read",
            token_file="/custom/path/tokens.json",
            refresh_buffer_seconds=600,
            callback_timeout_seconds=30,
        )

        assert config.subscription_key == "sub_key"
        assert config.callback_host == "127.0.0.1"
        assert config.callback_port == 9000
        assert config.callback_path == "/custom/callback"
        assert config.scope == "comfort.read"
        assert config.token_file == "/custom/path/tokens.json"
        assert config.refresh_buffer_seconds == 600
        assert config.callback_timeout_seconds == 30

    def test_config_validates_empty_client_id(self):
        """Config raises error for empty client_id."""
        with pytest.raises(ConfigurationError, match="client_id cannot be empty"):
            SmartherOAuthConfig(client_id="", client_secret="secret")

    def test_config_validates_empty_client_secret(self):
        """Config raises error for empty client_secret."""
        with pytest.raises(ConfigurationError, match="client_secret cannot be empty"):
            SmartherOAuthConfig(client_id="id", client_secret="")

    def test_config_allows_ephemeral_port(self):
        """Port 0 asks for any free port."""
        config = SmartherOAuthConfig(client_id="id", client_secret="secret", callback_port=0)

        assert config.callback_port == 0

    def test_config_validates_port_range(self):
        """Config validates callback port is in valid range."""
        with pytest.raises(
            ConfigurationError, match="callback_port must be between 0 and 65535"
        ):
            SmartherOAuthConfig(client_id="id", client_secret="secret", callback_port=-1)

        with pytest.raises(
            ConfigurationError, match="callback_port must be between 0 and 65535"
        ):
            SmartherOAuthConfig(
                client_id="id", client_secret="secret", callback_port=70000
            )

    def test_config_validates_callback_path(self):
        """callback_path must be absolute."""
        with pytest.raises(ConfigurationError, match="callback_path must start with"):
            SmartherOAuthConfig(client_id="id", client_secret="secret", callback_path="tokens")

    def test_config_validates_negative_refresh_buffer(self):
        """Config validates refresh_buffer_seconds is non-negative."""
        with pytest.raises(
            ConfigurationError, match="refresh_buffer_seconds cannot be negative"
        ):
            SmartherOAuthConfig(
                client_id="id", client_secret="secret", refresh_buffer_seconds=-1
            )

    def test_config_validates_timeouts(self):
        """Timeouts must be positive."""
        with pytest.raises(ConfigurationError, match="callback_timeout_seconds"):
            SmartherOAuthConfig(
                client_id="id", client_secret="secret", callback_timeout_seconds=0
            )

        with pytest.raises(ConfigurationError, match="request_timeout_seconds"):
            SmartherOAuthConfig(
                client_id="id", client_secret="secret", request_timeout_seconds=-5
            )

    def test_redirect_uri_property(self):
        """redirect_uri property generates correct URL."""
        config = SmartherOAuthConfig(
            client_id="id",
            client_secret="secret",
            callback_host="127.0.0.1",
            callback_port=9000,
            callback_path="/test/path",
        )

        assert config.redirect_uri == "http://127.0.0.1:9000/test/path"

    def test_redirect_uri_with_defaults(self):
        """redirect_uri property works with default values."""
        config = SmartherOAuthConfig(client_id="id", client_secret="secret")

        assert config.redirect_uri == "http://localhost:23784/tokens"

    def test_redirect_uri_for_bound_port(self):
        """redirect_uri_for_port reflects the port actually bound."""
        config = SmartherOAuthConfig(client_id="id", client_secret="secret", callback_port=0)

        assert config.redirect_uri_for_port(54321) == "http://localhost:54321/tokens"

    def test_redirect_uri_uses_public_base_uri(self):
        """public_base_uri replaces scheme, host and port of the redirect."""
        config = SmartherOAuthConfig(
            client_id="id",
            client_secret="secret",
            public_base_uri="https://home.example.com/",
        )

        assert config.redirect_uri == "https://home.example.com/tokens"
        assert config.redirect_uri_for_port(1234) == "https://home.example.com/tokens"

    def test_token_path_expands_user(self):
        """token_path expands the home directory."""
        config = SmartherOAuthConfig(client_id="id", client_secret="secret")

        assert config.token_path == os.path.expanduser("~/.smarther/tokens.json")
        assert "~" not in config.token_path

    @mock.patch.dict(
        os.environ,
        {
            "SMARTHER_CLIENT_ID": "env_client_id",
            "SMARTHER_CLIENT_SECRET": "env_client_secret",
        },
        clear=True,
    )
    def test_from_env_with_minimal_config(self):
        """from_env loads configuration from environment variables."""
        config = SmartherOAuthConfig.from_env()

        assert config.client_id == "env_client_id"
        assert config.client_secret == "env_client_secret"
        assert config.callback_host == "localhost"  # default
        assert config.callback_port == 23784  # default
        assert config.public_base_uri is None
        assert config.token_file == "~/.smarther/tokens.json"  # default

    @mock.patch.dict(
        os.environ,
        {
            "SMARTHER_CLIENT_ID": "env_id",
            "SMARTHER_CLIENT_SECRET": "env_secret",
            "SMARTHER_SUBSCRIPTION_KEY": "env_sub",
            "SMARTHER_CALLBACK_HOST": "0.0.0.0",
            "SMARTHER_CALLBACK_PORT": "9443",
            "SMARTHER_CALLBACK_PATH": "/cb",
            "SMARTHER_PUBLIC_BASE_URI": "https://home.example.com",
            "SMARTHER_SCOPE": "comfort.read comfort.write",
            "SMARTHER_TOKEN_FILE": "/custom/tokens.json",
            "SMARTHER_REFRESH_BUFFER_SECONDS": "120",
        },
        clear=True,
    )
    def test_from_env_with_full_config(self):
        """from_env respects optional environment variables."""
        config = SmartherOAuthConfig.from_env()

        assert config.subscription_key == "env_sub"
        assert config.callback_host == "0.0.0.0"
        assert config.callback_port == 9443
        assert config.callback_path == "/cb"
        assert config.public_base_uri == "https://home.example.com"
        assert config.scope == "comfort.read comfort.write"
        assert config.token_file == "/custom/tokens.json"
        assert config.refresh_buffer_seconds == 120

    @mock.patch.dict(
        os.environ,
        {
            "SMARTHER_CLIENT_ID": "env_id",
            "SMARTHER_CLIENT_SECRET": "env_secret",
            "SMARTHER_CALLBACK_PORT": "not-a-port",
        },
        clear=True,
    )
    def test_from_env_invalid_port(self):
        """from_env reports unparseable numeric settings."""
        with pytest.raises(ConfigurationError, match="Invalid numeric setting"):
            SmartherOAuthConfig.from_env()

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_from_env_missing_client_id(self):
        """from_env raises error when CLIENT_ID missing."""
        with pytest.raises(
            ConfigurationError, match="Missing Smarther OAuth credentials"
        ):
            SmartherOAuthConfig.from_env()

    @mock.patch.dict(os.environ, {"SMARTHER_CLIENT_ID": "id"}, clear=True)
    def test_from_env_missing_client_secret(self):
        """from_env raises error when CLIENT_SECRET missing."""
        with pytest.raises(
            ConfigurationError, match="Missing Smarther OAuth credentials"
        ):
            SmartherOAuthConfig.from_env()

    def test_configuration_error_message_helpful(self):
        """ConfigurationError from from_env includes helpful guidance."""
        with mock.patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                SmartherOAuthConfig.from_env()

        error_message = str(exc_info.value)
        assert "SMARTHER_CLIENT_ID" in error_message
        assert "SMARTHER_CLIENT_SECRET" in error_message
        assert "developer.legrand.com" in error_message
