"""
Configuration management for the OpenClaw MCP bridge.

Loads settings from environment variables with OPENCLAW_MCP_ prefix.
"""

import re
from typing import Annotated, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

CLIENT_ID_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_-]{2,63}$")
MIN_CLIENT_SECRET_LENGTH = 32


class ConfigurationError(Exception):
    """Raised when startup configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenClaw gateway connection
    openclaw_url: str = "http://127.0.0.1:18789"
    gateway_token: Optional[str] = None
    gateway_timeout_seconds: float = 30.0
    gateway_model: str = "claude-opus-4-5"

    # Transport: "stdio" for local clients, "http" (streamable HTTP) or "sse" for remote access
    transport: str = "stdio"
    host: str = "127.0.0.1"
    port: int = 3000

    # Public issuer URL used in OAuth metadata. Derived from the request when unset.
    issuer_url: Optional[str] = None

    # OAuth 2.1 authorization server (remote transports only)
    # Exactly one pre-registered client; dynamic registration is never offered.
    auth_enabled: bool = False
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uris: Annotated[List[str], NoDecode] = []
    # Accept any redirect_uri for the registered client. The client secret
    # checked at /token remains the gate.
    allow_any_redirect_uri: bool = False

    # Async task store
    max_tasks: int = 1000

    # Logging
    log_level: str = "INFO"

    # Uvicorn / HTTP server behavior
    shutdown_timeout_seconds: int = 7
    uvicorn_access_log: bool = False

    model_config = SettingsConfigDict(
        env_prefix="OPENCLAW_MCP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("redirect_uris", mode="before")
    @classmethod
    def _split_redirect_uris(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [uri.strip() for uri in value.split(",") if uri.strip()]
        return value

    @field_validator("transport")
    @classmethod
    def _check_transport(cls, value: str) -> str:
        value = value.lower()
        if value not in ("stdio", "http", "sse"):
            raise ValueError("transport must be one of: stdio, http, sse")
        return value

    @property
    def is_remote(self) -> bool:
        return self.transport in ("http", "sse")

    def validate_auth_config(self) -> None:
        """
        Validate the pre-registered OAuth client at startup.

        Only runs checks when auth is enabled. A broken auth configuration is
        fatal: the server must refuse to start rather than serve without auth.

        Raises:
            ConfigurationError: If client credentials or redirect policy are invalid
        """
        if not self.auth_enabled:
            return

        if not self.client_id:
            raise ConfigurationError(
                "OPENCLAW_MCP_AUTH_ENABLED=true but OPENCLAW_MCP_CLIENT_ID is not set. "
                "Refusing to start without auth."
            )
        if not CLIENT_ID_PATTERN.match(self.client_id):
            raise ConfigurationError(
                "OPENCLAW_MCP_CLIENT_ID is invalid. Must be 3-64 characters, "
                "alphanumeric/dashes/underscores, start with a letter or digit."
            )
        if not self.client_secret or len(self.client_secret) < MIN_CLIENT_SECRET_LENGTH:
            raise ConfigurationError(
                f"OPENCLAW_MCP_CLIENT_SECRET must be at least {MIN_CLIENT_SECRET_LENGTH} "
                "characters. Generate one with: openssl rand -hex 32"
            )
        if not self.redirect_uris and not self.allow_any_redirect_uri:
            raise ConfigurationError(
                "No OPENCLAW_MCP_REDIRECT_URIS configured. Set an allow-list, or set "
                "OPENCLAW_MCP_ALLOW_ANY_REDIRECT_URI=true to accept any redirect_uri."
            )


# Global settings instance
settings = Settings()
