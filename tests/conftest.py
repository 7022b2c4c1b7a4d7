"""
Pytest configuration and fixtures for openclaw_mcp tests.

Sets environment variables before any openclaw_mcp imports so the module-level
settings instance is built from a known state.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

# Config uses OPENCLAW_MCP_ prefix (see config.py model_config)
os.environ.setdefault("OPENCLAW_MCP_OPENCLAW_URL", "http://gateway.test:18789")
os.environ.setdefault("OPENCLAW_MCP_TRANSPORT", "stdio")
os.environ.setdefault("OPENCLAW_MCP_AUTH_ENABLED", "false")

CLIENT_ID = "test-client"
CLIENT_SECRET = "s" * 40
REDIRECT_URI = "https://client.example.com/callback"


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registered_client():
    from openclaw_mcp.auth.clients import RegisteredClient

    return RegisteredClient(
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        redirect_uris=(REDIRECT_URI,),
    )


@pytest.fixture
def client_registry(registered_client):
    from openclaw_mcp.auth.clients import ClientRegistry

    return ClientRegistry(registered_client)


@pytest.fixture
def auth_server(client_registry, clock):
    from openclaw_mcp.auth.server import AuthorizationServer

    return AuthorizationServer(client_registry, clock=clock)
