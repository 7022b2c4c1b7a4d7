"""
HTTP endpoints of the OAuth 2.1 authorization server.

Routes:
- GET  /.well-known/oauth-authorization-server  (RFC 8414, no registration_endpoint)
- GET  /.well-known/oauth-protected-resource[/...] (RFC 9728)
- GET  /authorize  (auto-approve, redirects with code + state)
- POST /token      (authorization_code and refresh_token grants)
- POST /revoke     (RFC 7009)
- ANY  /register   (always 404: dynamic client registration is disabled)
"""

import base64
import binascii
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote

from loguru import logger
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from openclaw_mcp.auth.clients import RegisteredClient
from openclaw_mcp.auth.errors import (
    InvalidClientError,
    InvalidRequestError,
    OAuthError,
    UnsupportedGrantTypeError,
    UnsupportedResponseTypeError,
)
from openclaw_mcp.auth.models import AuthorizationParams
from openclaw_mcp.auth.pkce import S256
from openclaw_mcp.auth.server import AuthorizationServer, build_redirect_url

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def oauth_error_response(
    error: OAuthError,
    status_code: Optional[int] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        error.to_dict(),
        status_code=status_code or error.status_code,
        headers={**NO_STORE_HEADERS, **(headers or {})},
    )


def _is_basic_auth(auth_header: Optional[str]) -> bool:
    return bool(auth_header) and auth_header.lower().startswith("basic ")


def _basic_credentials(auth_header: Optional[str]) -> Optional[Tuple[str, str]]:
    if not _is_basic_auth(auth_header):
        return None
    try:
        decoded = base64.b64decode(auth_header[6:].strip()).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise InvalidClientError("Malformed Basic credentials")
    client_id, sep, client_secret = decoded.partition(":")
    if not sep:
        raise InvalidClientError("Malformed Basic credentials")
    return unquote(client_id), unquote(client_secret)


class OAuthEndpoints:
    """Starlette handlers bound to one AuthorizationServer."""

    def __init__(
        self,
        auth_server: AuthorizationServer,
        issuer_url: Optional[str] = None,
        resource_path: str = "/mcp",
    ):
        self.auth_server = auth_server
        self.issuer_url = issuer_url.rstrip("/") if issuer_url else None
        self.resource_path = resource_path

    def _issuer(self, request: Request) -> str:
        return self.issuer_url or str(request.base_url).rstrip("/")

    async def authorization_server_metadata(self, request: Request) -> JSONResponse:
        issuer = self._issuer(request)
        return JSONResponse(
            {
                "issuer": issuer,
                "authorization_endpoint": f"{issuer}/authorize",
                "token_endpoint": f"{issuer}/token",
                "revocation_endpoint": f"{issuer}/revoke",
                "response_types_supported": ["code"],
                "grant_types_supported": ["authorization_code", "refresh_token"],
                "code_challenge_methods_supported": [S256],
                "token_endpoint_auth_methods_supported": ["client_secret_post", "client_secret_basic"],
                "revocation_endpoint_auth_methods_supported": ["client_secret_post", "client_secret_basic"],
            }
        )

    async def protected_resource_metadata(self, request: Request) -> JSONResponse:
        issuer = self._issuer(request)
        return JSONResponse(
            {
                "resource": f"{issuer}{self.resource_path}",
                "authorization_servers": [issuer],
                "bearer_methods_supported": ["header"],
            }
        )

    async def authorize(self, request: Request) -> Response:
        params = dict(request.query_params)
        if request.method == "POST":
            form = await request.form()
            params.update({k: str(v) for k, v in form.items()})

        client = self.auth_server.clients.get_client(params.get("client_id"))
        if client is None:
            logger.warning(f"Authorization request for unknown client_id={params.get('client_id')!r}")
            return oauth_error_response(InvalidClientError("Unknown client_id"), status_code=400)

        # Never redirect to a URI that failed validation
        try:
            redirect_uri = client.resolve_redirect_uri(params.get("redirect_uri"))
        except OAuthError as e:
            return oauth_error_response(e)

        state = params.get("state")

        try:
            if params.get("response_type") != "code":
                raise UnsupportedResponseTypeError("response_type must be 'code'")
            code_challenge = params.get("code_challenge")
            if not code_challenge:
                raise InvalidRequestError("code_challenge is required")
            if params.get("code_challenge_method") != S256:
                raise InvalidRequestError("code_challenge_method must be S256")

            url = self.auth_server.authorize(
                client.client_id,
                AuthorizationParams(
                    redirect_uri=redirect_uri,
                    code_challenge=code_challenge,
                    scopes=params.get("scope", "").split(),
                    state=state,
                    resource=params.get("resource"),
                ),
            )
        except OAuthError as e:
            query = e.to_dict()
            if state is not None:
                query["state"] = state
            return RedirectResponse(build_redirect_url(redirect_uri, query), status_code=302)

        return RedirectResponse(url, status_code=302)

    async def _authenticate_client(self, request: Request, form) -> RegisteredClient:
        basic = _basic_credentials(request.headers.get("authorization"))
        if basic is not None:
            client_id, client_secret = basic
        else:
            client_id, client_secret = form.get("client_id"), form.get("client_secret")
        return self.auth_server.clients.authenticate(client_id, client_secret)

    def _client_error_response(self, request: Request, error: OAuthError) -> JSONResponse:
        # RFC 6749 5.2: a failed Basic authentication is answered with a Basic challenge
        if isinstance(error, InvalidClientError) and _is_basic_auth(request.headers.get("authorization")):
            return oauth_error_response(error, headers={"WWW-Authenticate": 'Basic realm="OAuth"'})
        return oauth_error_response(error)

    async def token(self, request: Request) -> JSONResponse:
        form = await request.form()

        try:
            client = await self._authenticate_client(request, form)
            grant_type = form.get("grant_type")

            if grant_type == "authorization_code":
                code = form.get("code")
                code_verifier = form.get("code_verifier")
                if not code:
                    raise InvalidRequestError("code is required")
                if not code_verifier:
                    raise InvalidRequestError("code_verifier is required")
                tokens = self.auth_server.exchange_authorization_code(
                    client,
                    code,
                    code_verifier=code_verifier,
                    redirect_uri=form.get("redirect_uri"),
                    resource=form.get("resource"),
                )
            elif grant_type == "refresh_token":
                refresh_token = form.get("refresh_token")
                if not refresh_token:
                    raise InvalidRequestError("refresh_token is required")
                tokens = self.auth_server.exchange_refresh_token(
                    client,
                    refresh_token,
                    scopes=form.get("scope", "").split() or None,
                    resource=form.get("resource"),
                )
            else:
                raise UnsupportedGrantTypeError(
                    "grant_type must be authorization_code or refresh_token"
                )
        except OAuthError as e:
            logger.info(f"Token request rejected: {e.error_code} ({e.description})")
            return self._client_error_response(request, e)

        return JSONResponse(tokens.model_dump(), headers=NO_STORE_HEADERS)

    async def revoke(self, request: Request) -> JSONResponse:
        form = await request.form()

        try:
            client = await self._authenticate_client(request, form)
            token = form.get("token")
            if not token:
                raise InvalidRequestError("token is required")
        except OAuthError as e:
            return self._client_error_response(request, e)

        self.auth_server.revoke_token(client, token)
        return JSONResponse({}, headers=NO_STORE_HEADERS)

    async def registration_disabled(self, request: Request) -> JSONResponse:
        return JSONResponse(
            {"error": "not_found", "error_description": "Dynamic client registration is disabled"},
            status_code=404,
        )

    def routes(self) -> List[Route]:
        return [
            Route("/.well-known/oauth-authorization-server", self.authorization_server_metadata, methods=["GET"]),
            Route("/.well-known/oauth-protected-resource", self.protected_resource_metadata, methods=["GET"]),
            Route(
                "/.well-known/oauth-protected-resource/{path:path}",
                self.protected_resource_metadata,
                methods=["GET"],
            ),
            Route("/authorize", self.authorize, methods=["GET", "POST"]),
            Route("/token", self.token, methods=["POST"]),
            Route("/revoke", self.revoke, methods=["POST"]),
            Route("/register", self.registration_disabled, methods=["GET", "POST"]),
        ]
