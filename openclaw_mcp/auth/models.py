"""
OAuth 2.1 data models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


@dataclass(frozen=True)
class AuthorizationParams:
    """Validated parameters of an /authorize request."""

    redirect_uri: str
    code_challenge: str
    scopes: List[str] = field(default_factory=list)
    state: Optional[str] = None
    resource: Optional[str] = None


@dataclass
class AuthorizationCode:
    """Short-lived, single-use authorization code for the PKCE exchange."""

    code: str
    client_id: str
    redirect_uri: str
    code_challenge: str
    scopes: List[str]
    created_at: datetime
    state: Optional[str] = None
    resource: Optional[str] = None


@dataclass(frozen=True)
class AccessToken:
    """Issued bearer token. The token string is also its lookup key."""

    token: str
    client_id: str
    scopes: List[str]
    expires_at: datetime
    resource: Optional[str] = None


@dataclass(frozen=True)
class RefreshToken:
    token: str
    client_id: str
    scopes: List[str]
    expires_at: datetime
    resource: Optional[str] = None


class OAuthTokenResponse(BaseModel):
    """Token endpoint response body."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: str
    scope: str
