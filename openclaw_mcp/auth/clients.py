"""
Registry for the single pre-configured OAuth client.

Dynamic client registration is intentionally absent: only the client whose
credentials the operator configured can authenticate, so nobody who merely
knows the server URL can self-register.
"""

import hmac
import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

from loguru import logger

from openclaw_mcp.auth.errors import InvalidClientError, InvalidRequestError
from openclaw_mcp.config import Settings


@dataclass(frozen=True)
class RegisteredClient:
    """
    The operator-configured OAuth client. Immutable after construction.

    Redirect policy is explicit: either `redirect_uris` is an exact-match
    allow-list, or `allow_any_redirect_uri` is set and any URI is accepted
    (the client secret checked at /token is then the only gate).
    """

    client_id: str
    client_secret: str
    redirect_uris: Tuple[str, ...] = ()
    allow_any_redirect_uri: bool = False
    grant_types: Tuple[str, ...] = ("authorization_code", "refresh_token")
    response_types: Tuple[str, ...] = ("code",)
    token_endpoint_auth_method: str = "client_secret_post"
    client_name: str = "OpenClaw MCP Client"
    client_id_issued_at: int = field(default_factory=lambda: int(time.time()))

    def resolve_redirect_uri(self, redirect_uri: Optional[str]) -> str:
        """
        Return the redirect URI to use for an authorization request.

        Args:
            redirect_uri: URI from the request, or None if omitted

        Raises:
            InvalidRequestError: If the URI is missing and cannot be defaulted,
                or is not on the allow-list
        """
        if redirect_uri:
            if self.allow_any_redirect_uri or redirect_uri in self.redirect_uris:
                return redirect_uri
            raise InvalidRequestError("redirect_uri is not registered for this client")

        if len(self.redirect_uris) == 1:
            return self.redirect_uris[0]
        raise InvalidRequestError("redirect_uri is required")

    def check_secret(self, client_secret: Optional[str]) -> bool:
        if not client_secret:
            return False
        return hmac.compare_digest(self.client_secret.encode(), client_secret.encode())


class ClientRegistry:
    """Holds zero or one RegisteredClient. Exposes lookups only."""

    def __init__(self, client: Optional[RegisteredClient] = None):
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClientRegistry":
        if not (settings.client_id and settings.client_secret):
            return cls()

        client = RegisteredClient(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uris=tuple(settings.redirect_uris),
            allow_any_redirect_uri=settings.allow_any_redirect_uri,
        )
        if client.allow_any_redirect_uri:
            logger.warning(
                "⚠️  allow_any_redirect_uri is enabled: any redirect_uri will be accepted "
                "for the registered client. Set OPENCLAW_MCP_REDIRECT_URIS for production."
            )
        return cls(client)

    @property
    def has_client(self) -> bool:
        return self._client is not None

    def get_client(self, client_id: Optional[str]) -> Optional[RegisteredClient]:
        if self._client is not None and client_id and self._client.client_id == client_id:
            return self._client
        return None

    def authenticate(self, client_id: Optional[str], client_secret: Optional[str]) -> RegisteredClient:
        """
        Authenticate a client at the token or revocation endpoint.

        Raises:
            InvalidClientError: If the client is unknown or the secret is wrong
        """
        client = self.get_client(client_id)
        if client is None:
            raise InvalidClientError("Unknown client")
        if not client.check_secret(client_secret):
            logger.warning(f"Client authentication failed for client_id={client_id}")
            raise InvalidClientError("Invalid client credentials")
        return client
