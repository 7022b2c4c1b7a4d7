"""
Tests for settings loading and startup validation.
"""

import pytest

from openclaw_mcp.config import ConfigurationError, Settings

VALID_SECRET = "s" * 32


def auth_settings(**overrides) -> Settings:
    values = dict(
        auth_enabled=True,
        client_id="claude-ai",
        client_secret=VALID_SECRET,
        redirect_uris="https://claude.ai/api/mcp/auth_callback",
    )
    values.update(overrides)
    return Settings(**values)


class TestDefaults:
    def test_defaults_are_valid(self, monkeypatch):
        monkeypatch.delenv("OPENCLAW_MCP_OPENCLAW_URL", raising=False)
        settings = Settings()

        assert settings.openclaw_url == "http://127.0.0.1:18789"
        assert settings.transport == "stdio"
        assert settings.auth_enabled is False
        assert settings.max_tasks == 1000
        assert settings.is_remote is False
        settings.validate_auth_config()

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("OPENCLAW_MCP_TRANSPORT", "SSE")
        monkeypatch.setenv("OPENCLAW_MCP_PORT", "8080")
        monkeypatch.setenv("OPENCLAW_MCP_REDIRECT_URIS", "https://a.example/cb, https://b.example/cb")

        settings = Settings()

        assert settings.transport == "sse"
        assert settings.is_remote is True
        assert settings.port == 8080
        assert settings.redirect_uris == ["https://a.example/cb", "https://b.example/cb"]

    def test_invalid_transport(self):
        with pytest.raises(ValueError):
            Settings(transport="websocket")


class TestValidateAuthConfig:
    def test_valid(self):
        auth_settings().validate_auth_config()

    def test_missing_client_id(self):
        with pytest.raises(ConfigurationError, match="CLIENT_ID is not set"):
            auth_settings(client_id=None).validate_auth_config()

    @pytest.mark.parametrize("client_id", ["ab", "-starts-with-dash", "has space", "x" * 65])
    def test_malformed_client_id(self, client_id):
        with pytest.raises(ConfigurationError, match="CLIENT_ID is invalid"):
            auth_settings(client_id=client_id).validate_auth_config()

    def test_short_secret(self):
        with pytest.raises(ConfigurationError, match="at least 32"):
            auth_settings(client_secret="s" * 31).validate_auth_config()

    def test_no_redirect_policy(self):
        with pytest.raises(ConfigurationError, match="REDIRECT_URIS"):
            auth_settings(redirect_uris="").validate_auth_config()

    def test_allow_any_redirect(self):
        auth_settings(redirect_uris="", allow_any_redirect_uri=True).validate_auth_config()

    def test_disabled_auth_skips_checks(self):
        Settings(auth_enabled=False, client_id="!!").validate_auth_config()
