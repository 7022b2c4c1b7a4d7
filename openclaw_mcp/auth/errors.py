"""
OAuth 2.1 error types.

Each error carries the RFC 6749 error code sent on the wire and the HTTP
status used when it reaches an endpoint. Descriptions are short and never
include internal details.
"""

from typing import Dict


class OAuthError(Exception):
    """Base class for errors surfaced as OAuth error bodies."""

    error_code = "server_error"
    status_code = 400

    def __init__(self, description: str = ""):
        super().__init__(description or self.error_code)
        self.description = description

    def to_dict(self) -> Dict[str, str]:
        body = {"error": self.error_code}
        if self.description:
            body["error_description"] = self.description
        return body


class InvalidRequestError(OAuthError):
    error_code = "invalid_request"


class InvalidClientError(OAuthError):
    """Unknown client_id or failed client authentication."""

    error_code = "invalid_client"
    status_code = 401


class InvalidGrantError(OAuthError):
    """Authorization code or refresh token is absent, expired or already used."""

    error_code = "invalid_grant"


class ClientMismatchError(OAuthError):
    """
    Code or refresh token was issued to a different client.

    Sent as invalid_grant on the wire (RFC 6749 5.2), but kept as its own type
    so callers can tell it apart from an expired or unknown credential.
    """

    error_code = "invalid_grant"


class InvalidScopeError(OAuthError):
    error_code = "invalid_scope"


class UnsupportedGrantTypeError(OAuthError):
    error_code = "unsupported_grant_type"


class UnsupportedResponseTypeError(OAuthError):
    error_code = "unsupported_response_type"


class InvalidTokenError(OAuthError):
    """Access token is absent, expired or revoked."""

    error_code = "invalid_token"
    status_code = 401
