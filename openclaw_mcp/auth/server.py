"""
OAuth 2.1 authorization server with PKCE support.

Implements the authorization code flow (RFC 6749 + RFC 7636 S256) for the
single pre-registered client, refresh token rotation, RFC 7009 revocation and
bearer verification for the protected MCP endpoints.

All codes and tokens live in memory and are lost on restart. Every read path
re-checks expiry; the periodic reaper only bounds memory.
"""

import asyncio
import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from loguru import logger

from openclaw_mcp.auth.clients import ClientRegistry, RegisteredClient
from openclaw_mcp.auth.errors import (
    ClientMismatchError,
    InvalidClientError,
    InvalidGrantError,
    InvalidScopeError,
    InvalidTokenError,
)
from openclaw_mcp.auth.models import (
    AccessToken,
    AuthorizationCode,
    AuthorizationParams,
    OAuthTokenResponse,
    RefreshToken,
)
from openclaw_mcp.auth.pkce import verify_s256

# Token lifetimes
CODE_TTL = timedelta(minutes=10)
ACCESS_TOKEN_TTL = timedelta(hours=1)
REFRESH_TOKEN_TTL = timedelta(hours=24)
REAPER_INTERVAL = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_secret() -> str:
    return secrets.token_urlsafe(32)


def build_redirect_url(redirect_uri: str, params: Dict[str, str]) -> str:
    """Append params to redirect_uri, keeping any query it already has."""
    parts = urlsplit(redirect_uri)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


class AuthorizationServer:
    """
    In-memory OAuth 2.1 authorization server.

    Authorization requests are auto-approved (no consent screen): the only
    client is the one the operator configured.

    Codes, access tokens and refresh tokens each have their own map and lock,
    so every create/delete on a map is atomic.
    """

    def __init__(
        self,
        clients: ClientRegistry,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.clients = clients
        self._clock = clock

        self._codes: Dict[str, AuthorizationCode] = {}
        self._access_tokens: Dict[str, AccessToken] = {}
        self._refresh_tokens: Dict[str, RefreshToken] = {}

        self._codes_lock = threading.Lock()
        self._access_lock = threading.Lock()
        self._refresh_lock = threading.Lock()

        self._reaper_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Authorization endpoint
    # ------------------------------------------------------------------

    def authorize(self, client_id: str, params: AuthorizationParams) -> str:
        """
        Issue an authorization code and return the redirect URL.

        Args:
            client_id: client_id from the request
            params: Authorization parameters (redirect URI, PKCE challenge, scopes, ...)

        Returns:
            redirect_uri with `code` and, if the caller sent one, `state`

        Raises:
            InvalidClientError: If client_id is not the registered client (no code is minted)
            InvalidRequestError: If the redirect URI is not acceptable for the client
        """
        client = self.clients.get_client(client_id)
        if client is None:
            raise InvalidClientError("Unknown client_id")

        redirect_uri = client.resolve_redirect_uri(params.redirect_uri)

        code = AuthorizationCode(
            code=_new_secret(),
            client_id=client.client_id,
            redirect_uri=redirect_uri,
            code_challenge=params.code_challenge,
            scopes=list(params.scopes),
            created_at=self._clock(),
            state=params.state,
            resource=params.resource,
        )
        with self._codes_lock:
            self._codes[code.code] = code

        logger.info(f"Authorization code issued for client {client.client_id}")

        query = {"code": code.code}
        if params.state is not None:
            query["state"] = params.state
        return build_redirect_url(redirect_uri, query)

    def _code_expired(self, code: AuthorizationCode) -> bool:
        return self._clock() - code.created_at > CODE_TTL

    def challenge_for_code(self, client: RegisteredClient, code: str) -> str:
        """
        Return the PKCE challenge recorded for a code.

        Raises:
            InvalidGrantError: If the code is unknown or expired (expired codes are evicted)
        """
        with self._codes_lock:
            data = self._codes.get(code)
            if data is not None and self._code_expired(data):
                del self._codes[code]
                data = None

        if data is None:
            raise InvalidGrantError("Invalid authorization code")
        return data.code_challenge

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    def exchange_authorization_code(
        self,
        client: RegisteredClient,
        code: str,
        code_verifier: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        resource: Optional[str] = None,
    ) -> OAuthTokenResponse:
        """
        Exchange an authorization code for an access + refresh token pair.

        The code is removed as soon as it is looked up, so it is single-use
        even when the exchange then fails.

        Args:
            client: The authenticated client presenting the code
            code: Authorization code from /authorize
            code_verifier: PKCE verifier; checked against the stored S256 challenge
            redirect_uri: If given, must equal the URI used at authorize time
            resource: RFC 8707 resource indicator overriding the authorize-time one

        Raises:
            InvalidGrantError: Unknown/expired code, redirect mismatch or PKCE failure
            ClientMismatchError: Code was issued to a different client
        """
        with self._codes_lock:
            data = self._codes.pop(code, None)

        if data is None or self._code_expired(data):
            raise InvalidGrantError("Invalid authorization code")

        if data.client_id != client.client_id:
            logger.warning(f"Authorization code presented by wrong client: {client.client_id}")
            raise ClientMismatchError("Authorization code was not issued to this client")

        if redirect_uri and redirect_uri != data.redirect_uri:
            raise InvalidGrantError("redirect_uri does not match the authorization request")

        if code_verifier is not None and not verify_s256(code_verifier, data.code_challenge):
            raise InvalidGrantError("PKCE verification failed")

        return self._issue_tokens(client.client_id, data.scopes, resource or data.resource)

    def exchange_refresh_token(
        self,
        client: RegisteredClient,
        refresh_token: str,
        scopes: Optional[List[str]] = None,
        resource: Optional[str] = None,
    ) -> OAuthTokenResponse:
        """
        Rotate a refresh token: the presented token is deleted and a brand-new
        access + refresh pair is issued.

        Args:
            client: The authenticated client
            refresh_token: Refresh token to redeem
            scopes: Optional subset of the originally granted scopes
            resource: Optional resource indicator override

        Raises:
            InvalidGrantError: Unknown, expired or already-rotated refresh token
            ClientMismatchError: Token was issued to a different client
            InvalidScopeError: Requested scopes exceed the original grant
        """
        with self._refresh_lock:
            data = self._refresh_tokens.get(refresh_token)
            if data is None or data.expires_at <= self._clock():
                if data is not None:
                    del self._refresh_tokens[refresh_token]
                raise InvalidGrantError("Invalid refresh token")

            if data.client_id != client.client_id:
                raise ClientMismatchError("Refresh token was not issued to this client")

            if scopes:
                granted = set(data.scopes)
                if not set(scopes) <= granted:
                    raise InvalidScopeError("Requested scope exceeds the original grant")
                token_scopes = list(scopes)
            else:
                token_scopes = list(data.scopes)

            del self._refresh_tokens[refresh_token]

        logger.info(f"Refresh token rotated for client {client.client_id}")
        return self._issue_tokens(client.client_id, token_scopes, resource or data.resource)

    def _issue_tokens(
        self,
        client_id: str,
        scopes: List[str],
        resource: Optional[str],
    ) -> OAuthTokenResponse:
        now = self._clock()
        access = AccessToken(
            token=_new_secret(),
            client_id=client_id,
            scopes=list(scopes),
            expires_at=now + ACCESS_TOKEN_TTL,
            resource=resource,
        )
        refresh = RefreshToken(
            token=_new_secret(),
            client_id=client_id,
            scopes=list(scopes),
            expires_at=now + REFRESH_TOKEN_TTL,
            resource=resource,
        )

        with self._access_lock:
            self._access_tokens[access.token] = access
        with self._refresh_lock:
            self._refresh_tokens[refresh.token] = refresh

        return OAuthTokenResponse(
            access_token=access.token,
            token_type="bearer",
            expires_in=int(ACCESS_TOKEN_TTL.total_seconds()),
            refresh_token=refresh.token,
            scope=" ".join(scopes),
        )

    # ------------------------------------------------------------------
    # Resource access and revocation
    # ------------------------------------------------------------------

    def verify_access_token(self, token: str) -> AccessToken:
        """
        Verify a bearer token presented to a protected endpoint.

        Raises:
            InvalidTokenError: If the token is unknown, revoked or expired
        """
        with self._access_lock:
            data = self._access_tokens.get(token)
            if data is not None and data.expires_at <= self._clock():
                del self._access_tokens[token]
                data = None

        if data is None:
            raise InvalidTokenError("Invalid or expired token")
        return data

    def revoke_token(self, client: RegisteredClient, token: str) -> None:
        """
        Revoke an access or refresh token (RFC 7009).

        Both stores are checked, so callers need not say which kind of token
        they hold. Unknown tokens are ignored.
        """
        with self._access_lock:
            access = self._access_tokens.get(token)
            if access is not None and access.client_id == client.client_id:
                del self._access_tokens[token]
                logger.info(f"Access token revoked for client {client.client_id}")

        with self._refresh_lock:
            refresh = self._refresh_tokens.get(token)
            if refresh is not None and refresh.client_id == client.client_id:
                del self._refresh_tokens[token]
                logger.info(f"Refresh token revoked for client {client.client_id}")

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def reap_expired(self) -> int:
        """
        Remove expired codes, access tokens and refresh tokens.

        Returns:
            Total number of entries removed
        """
        now = self._clock()
        removed = 0

        with self._codes_lock:
            expired = [k for k, v in self._codes.items() if now - v.created_at > CODE_TTL]
            for k in expired:
                del self._codes[k]
            removed += len(expired)

        with self._access_lock:
            expired = [k for k, v in self._access_tokens.items() if v.expires_at <= now]
            for k in expired:
                del self._access_tokens[k]
            removed += len(expired)

        with self._refresh_lock:
            expired = [k for k, v in self._refresh_tokens.items() if v.expires_at <= now]
            for k in expired:
                del self._refresh_tokens[k]
            removed += len(expired)

        if removed:
            logger.debug(f"Reaped {removed} expired OAuth entries")
        return removed

    def counts(self) -> Dict[str, int]:
        return {
            "codes": len(self._codes),
            "access_tokens": len(self._access_tokens),
            "refresh_tokens": len(self._refresh_tokens),
        }

    def start_reaper(self, interval: timedelta = REAPER_INTERVAL) -> None:
        """Start the periodic reaper on the running event loop (idempotent)."""
        if self._reaper_task and not self._reaper_task.done():
            return
        self._reaper_task = asyncio.create_task(self._reaper_loop(interval))

    async def stop_reaper(self) -> None:
        if self._reaper_task is None:
            return
        self._reaper_task.cancel()
        try:
            await self._reaper_task
        except asyncio.CancelledError:
            pass
        self._reaper_task = None

    async def _reaper_loop(self, interval: timedelta) -> None:
        while True:
            await asyncio.sleep(interval.total_seconds())
            try:
                self.reap_expired()
            except Exception as e:
                logger.error(f"OAuth reaper failed: {e}")
