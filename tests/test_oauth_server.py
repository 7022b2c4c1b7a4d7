"""
Tests for the in-memory OAuth 2.1 authorization server.

Covers the code + PKCE round trip, single-use codes, refresh rotation,
revocation, cross-client protection, scope narrowing and expiry.
"""

import base64
import hashlib
from urllib.parse import parse_qs, urlsplit

import pytest

from openclaw_mcp.auth.clients import RegisteredClient
from openclaw_mcp.auth.errors import (
    ClientMismatchError,
    InvalidClientError,
    InvalidGrantError,
    InvalidRequestError,
    InvalidScopeError,
    InvalidTokenError,
)
from openclaw_mcp.auth.models import AuthorizationParams
from openclaw_mcp.auth.pkce import compute_s256_challenge, verify_s256
from openclaw_mcp.auth.server import build_redirect_url

from .conftest import CLIENT_ID, REDIRECT_URI

VERIFIER = "dBjftJeZ4CVP-mJ92K9rnKZ4Hh4T8yF4dZx1j2Yb0Zs"


def authorize(auth_server, scopes=None, state="xyz", redirect_uri=REDIRECT_URI) -> str:
    """Run /authorize and return the issued code."""
    url = auth_server.authorize(
        CLIENT_ID,
        AuthorizationParams(
            redirect_uri=redirect_uri,
            code_challenge=compute_s256_challenge(VERIFIER),
            scopes=scopes or ["read", "write"],
            state=state,
        ),
    )
    return parse_qs(urlsplit(url).query)["code"][0]


@pytest.fixture
def other_client():
    return RegisteredClient(client_id="other-client", client_secret="o" * 40)


class TestPkce:
    def test_challenge_is_unpadded_base64url_sha256(self):
        digest = hashlib.sha256(VERIFIER.encode("ascii")).digest()
        expected = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

        challenge = compute_s256_challenge(VERIFIER)

        assert challenge == expected
        assert len(challenge) == 43
        assert "=" not in challenge
        assert "+" not in challenge and "/" not in challenge

    def test_verify(self):
        challenge = compute_s256_challenge(VERIFIER)

        assert verify_s256(VERIFIER, challenge) is True
        assert verify_s256("wrong-verifier", challenge) is False
        assert verify_s256("café", challenge) is False


class TestBuildRedirectUrl:
    def test_preserves_existing_query(self):
        url = build_redirect_url("https://app.example.com/cb?tenant=a", {"code": "c1", "state": "s"})

        assert parse_qs(urlsplit(url).query) == {"tenant": ["a"], "code": ["c1"], "state": ["s"]}


class TestAuthorize:
    def test_redirect_contains_code_and_state(self, auth_server):
        url = auth_server.authorize(
            CLIENT_ID,
            AuthorizationParams(redirect_uri=REDIRECT_URI, code_challenge="c", state="abc"),
        )

        parts = urlsplit(url)
        query = parse_qs(parts.query)
        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == REDIRECT_URI
        assert query["state"] == ["abc"]
        assert len(query["code"][0]) >= 32

    def test_state_omitted_when_not_supplied(self, auth_server):
        url = auth_server.authorize(
            CLIENT_ID,
            AuthorizationParams(redirect_uri=REDIRECT_URI, code_challenge="c"),
        )

        assert "state" not in parse_qs(urlsplit(url).query)

    def test_unknown_client_mints_nothing(self, auth_server):
        with pytest.raises(InvalidClientError):
            auth_server.authorize(
                "intruder",
                AuthorizationParams(redirect_uri=REDIRECT_URI, code_challenge="c"),
            )

        assert auth_server.counts()["codes"] == 0

    def test_unregistered_redirect_rejected(self, auth_server):
        with pytest.raises(InvalidRequestError):
            authorize(auth_server, redirect_uri="https://evil.example.com/cb")

        assert auth_server.counts()["codes"] == 0

    def test_challenge_for_code(self, auth_server, registered_client):
        code = authorize(auth_server)

        assert auth_server.challenge_for_code(registered_client, code) == compute_s256_challenge(VERIFIER)

    def test_challenge_for_expired_code(self, auth_server, registered_client, clock):
        code = authorize(auth_server)
        clock.advance(minutes=11)

        with pytest.raises(InvalidGrantError):
            auth_server.challenge_for_code(registered_client, code)


class TestCodeExchange:
    def test_round_trip(self, auth_server, registered_client):
        code = authorize(auth_server)

        tokens = auth_server.exchange_authorization_code(
            registered_client, code, code_verifier=VERIFIER, redirect_uri=REDIRECT_URI
        )

        assert tokens.token_type == "bearer"
        assert tokens.expires_in == 3600
        assert tokens.scope == "read write"
        assert tokens.access_token != tokens.refresh_token
        access = auth_server.verify_access_token(tokens.access_token)
        assert access.client_id == CLIENT_ID
        assert access.scopes == ["read", "write"]

    def test_code_is_single_use(self, auth_server, registered_client):
        code = authorize(auth_server)
        auth_server.exchange_authorization_code(registered_client, code, code_verifier=VERIFIER)

        with pytest.raises(InvalidGrantError):
            auth_server.exchange_authorization_code(registered_client, code, code_verifier=VERIFIER)

    def test_wrong_verifier_burns_code(self, auth_server, registered_client):
        code = authorize(auth_server)

        with pytest.raises(InvalidGrantError, match="PKCE"):
            auth_server.exchange_authorization_code(registered_client, code, code_verifier="nope")
        with pytest.raises(InvalidGrantError):
            auth_server.exchange_authorization_code(registered_client, code, code_verifier=VERIFIER)

    def test_redirect_mismatch(self, auth_server, registered_client):
        code = authorize(auth_server)

        with pytest.raises(InvalidGrantError, match="redirect_uri"):
            auth_server.exchange_authorization_code(
                registered_client,
                code,
                code_verifier=VERIFIER,
                redirect_uri="https://client.example.com/other",
            )

    def test_other_client_cannot_redeem(self, auth_server, other_client):
        code = authorize(auth_server)

        with pytest.raises(ClientMismatchError):
            auth_server.exchange_authorization_code(other_client, code, code_verifier=VERIFIER)

    def test_expired_code(self, auth_server, registered_client, clock):
        code = authorize(auth_server)
        clock.advance(minutes=10, seconds=1)

        with pytest.raises(InvalidGrantError):
            auth_server.exchange_authorization_code(registered_client, code, code_verifier=VERIFIER)


class TestRefresh:
    def issue(self, auth_server, registered_client, scopes=None):
        code = authorize(auth_server, scopes=scopes)
        return auth_server.exchange_authorization_code(registered_client, code, code_verifier=VERIFIER)

    def test_rotation(self, auth_server, registered_client):
        first = self.issue(auth_server, registered_client)

        second = auth_server.exchange_refresh_token(registered_client, first.refresh_token)

        assert second.refresh_token != first.refresh_token
        assert second.access_token != first.access_token
        auth_server.verify_access_token(second.access_token)
        with pytest.raises(InvalidGrantError):
            auth_server.exchange_refresh_token(registered_client, first.refresh_token)

    def test_scope_narrowing(self, auth_server, registered_client):
        first = self.issue(auth_server, registered_client, scopes=["read", "write"])

        narrowed = auth_server.exchange_refresh_token(registered_client, first.refresh_token, scopes=["read"])

        assert narrowed.scope == "read"
        assert auth_server.verify_access_token(narrowed.access_token).scopes == ["read"]

    def test_scope_widening_rejected(self, auth_server, registered_client):
        first = self.issue(auth_server, registered_client, scopes=["read"])

        with pytest.raises(InvalidScopeError):
            auth_server.exchange_refresh_token(registered_client, first.refresh_token, scopes=["read", "admin"])

        # The token survives a rejected request
        auth_server.exchange_refresh_token(registered_client, first.refresh_token)

    def test_other_client_cannot_refresh(self, auth_server, registered_client, other_client):
        first = self.issue(auth_server, registered_client)

        with pytest.raises(ClientMismatchError):
            auth_server.exchange_refresh_token(other_client, first.refresh_token)

        auth_server.exchange_refresh_token(registered_client, first.refresh_token)

    def test_expired_refresh_token(self, auth_server, registered_client, clock):
        first = self.issue(auth_server, registered_client)
        clock.advance(hours=24)

        with pytest.raises(InvalidGrantError):
            auth_server.exchange_refresh_token(registered_client, first.refresh_token)
        assert auth_server.counts()["refresh_tokens"] == 0


class TestVerifyAndRevoke:
    def issue(self, auth_server, registered_client):
        code = authorize(auth_server)
        return auth_server.exchange_authorization_code(registered_client, code, code_verifier=VERIFIER)

    def test_unknown_token(self, auth_server):
        with pytest.raises(InvalidTokenError):
            auth_server.verify_access_token("not-a-token")

    def test_access_token_expires(self, auth_server, registered_client, clock):
        tokens = self.issue(auth_server, registered_client)
        clock.advance(minutes=59)
        auth_server.verify_access_token(tokens.access_token)

        clock.advance(minutes=1)

        with pytest.raises(InvalidTokenError):
            auth_server.verify_access_token(tokens.access_token)

    def test_revoke_access_token(self, auth_server, registered_client):
        tokens = self.issue(auth_server, registered_client)

        auth_server.revoke_token(registered_client, tokens.access_token)

        with pytest.raises(InvalidTokenError):
            auth_server.verify_access_token(tokens.access_token)

    def test_revoke_refresh_token(self, auth_server, registered_client):
        tokens = self.issue(auth_server, registered_client)

        auth_server.revoke_token(registered_client, tokens.refresh_token)

        with pytest.raises(InvalidGrantError):
            auth_server.exchange_refresh_token(registered_client, tokens.refresh_token)

    def test_revoke_is_idempotent(self, auth_server, registered_client):
        tokens = self.issue(auth_server, registered_client)

        auth_server.revoke_token(registered_client, tokens.access_token)
        auth_server.revoke_token(registered_client, tokens.access_token)
        auth_server.revoke_token(registered_client, "never-issued")

    def test_other_client_cannot_revoke(self, auth_server, registered_client, other_client):
        tokens = self.issue(auth_server, registered_client)

        auth_server.revoke_token(other_client, tokens.access_token)

        auth_server.verify_access_token(tokens.access_token)


class TestReaper:
    def test_reap_expired(self, auth_server, registered_client, clock):
        code = authorize(auth_server)
        auth_server.exchange_authorization_code(registered_client, code, code_verifier=VERIFIER)
        authorize(auth_server)
        assert auth_server.counts() == {"codes": 1, "access_tokens": 1, "refresh_tokens": 1}

        clock.advance(hours=2)
        assert auth_server.reap_expired() == 2
        assert auth_server.counts() == {"codes": 0, "access_tokens": 0, "refresh_tokens": 1}

        clock.advance(hours=23)
        assert auth_server.reap_expired() == 1
        assert auth_server.counts()["refresh_tokens"] == 0

    @pytest.mark.asyncio
    async def test_start_and_stop_reaper(self, auth_server):
        auth_server.start_reaper()
        first = auth_server._reaper_task
        auth_server.start_reaper()

        assert auth_server._reaper_task is first
        await auth_server.stop_reaper()
        assert auth_server._reaper_task is None
