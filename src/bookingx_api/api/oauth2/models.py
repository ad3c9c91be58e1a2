# OAuth2 value types.
# Created: 2026-02-20
#
# Persisted entities live in bookingx_api.store.models; these are the values
# handed between the issuer, the token server and the HTTP layer.

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class GrantType(str, Enum):
    """Supported token grants. AuthorizationServer has one handler per member."""

    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"

    @classmethod
    def parse(cls, value: str | None) -> GrantType | None:
        try:
            return cls(value)
        except ValueError:
            return None


class ChallengeMethod(str, Enum):
    """PKCE code challenge methods (RFC 7636)."""

    PLAIN = "plain"
    S256 = "S256"


class TokenTypeHint(str, Enum):
    ACCESS_TOKEN = "access_token"
    REFRESH_TOKEN = "refresh_token"

    @classmethod
    def parse(cls, value: str | None) -> TokenTypeHint | None:
        # Unknown hints are ignored and the full search is done (RFC 7009)
        try:
            return cls(value) if value else None
        except ValueError:
            return None


@dataclass(frozen=True)
class AuthorizationGrant:
    """Result of a successful authorize step."""

    code: str
    redirect_uri: str


@dataclass(frozen=True)
class CodeGrant:
    """What a consumed authorization code vouches for."""

    client_id: str
    user_id: str
    scope: str


@dataclass(frozen=True)
class TokenGrant:
    """Who and what a token request is issued for, once its grant checked out."""

    client_id: str
    user_id: str | None
    scope: str
    include_refresh: bool = True


@dataclass(frozen=True)
class TokenInfo:
    """A validated token as seen by resource handlers and introspection."""

    client_id: str
    user_id: str | None
    scope: str
    expires_at: int
    token_type: str = TokenTypeHint.ACCESS_TOKEN.value

    @property
    def scopes(self) -> list[str]:
        return self.scope.split() if self.scope else []
