"""
Bearer token middleware for the protected MCP endpoints.

Written as plain ASGI rather than BaseHTTPMiddleware so that SSE and
streamable HTTP responses are passed through without buffering.
"""

import re
from typing import Iterable, Optional

from loguru import logger
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from openclaw_mcp.auth.errors import InvalidTokenError
from openclaw_mcp.auth.server import AuthorizationServer

DEFAULT_PROTECTED_PREFIXES = ("/mcp", "/sse", "/messages")

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def extract_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    """Return the token from an "Authorization: Bearer <token>" header value."""
    if not auth_header:
        return None
    match = _BEARER_RE.match(auth_header.strip())
    return match.group(1).strip() if match else None


class BearerAuthMiddleware:
    """
    Reject requests to protected paths unless they carry a valid access token.

    Failures always answer 401 (never 404) with a WWW-Authenticate challenge
    pointing at the protected resource metadata. On success the verified
    AccessToken is available as `request.state.access_token`.
    """

    def __init__(
        self,
        app: ASGIApp,
        auth_server: AuthorizationServer,
        protected_prefixes: Iterable[str] = DEFAULT_PROTECTED_PREFIXES,
        issuer_url: Optional[str] = None,
    ):
        self.app = app
        self.auth_server = auth_server
        self.protected_prefixes = tuple(p.rstrip("/") for p in protected_prefixes)
        self.issuer_url = issuer_url.rstrip("/") if issuer_url else None

    def _is_protected(self, path: str) -> bool:
        return any(path == p or path.startswith(p + "/") for p in self.protected_prefixes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self._is_protected(scope["path"]):
            await self.app(scope, receive, send)
            return

        token = extract_bearer_token(Headers(scope=scope).get("authorization"))
        try:
            if token is None:
                raise InvalidTokenError("Missing Authorization header")
            access_token = self.auth_server.verify_access_token(token)
        except InvalidTokenError as e:
            logger.debug(f"Rejected {scope['method']} {scope['path']}: {e.description}")
            response = self._unauthorized(scope, e)
            await response(scope, receive, send)
            return

        scope.setdefault("state", {})["access_token"] = access_token
        await self.app(scope, receive, send)

    def _unauthorized(self, scope: Scope, error: InvalidTokenError) -> JSONResponse:
        base_url = self.issuer_url or str(Request(scope).base_url).rstrip("/")
        challenge = (
            f'Bearer error="{error.error_code}", '
            f'error_description="{error.description}", '
            f'resource_metadata="{base_url}/.well-known/oauth-protected-resource"'
        )
        return JSONResponse(
            error.to_dict(),
            status_code=401,
            headers={"WWW-Authenticate": challenge},
        )
