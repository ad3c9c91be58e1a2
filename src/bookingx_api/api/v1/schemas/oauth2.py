# OAuth2 schemas.
# Created: 2026-02-20

from __future__ import annotations

from pydantic import BaseModel, Field


class TokenRequest(BaseModel):
    """Token request for any grant. Which fields matter depends on grant_type."""

    grant_type: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    code: str | None = None
    redirect_uri: str | None = None
    code_verifier: str | None = None
    refresh_token: str | None = None
    scope: str | None = None


class TokenResponse(BaseModel):
    """OAuth2 token response."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    scope: str
    refresh_token: str | None = None  # Not issued for client_credentials


class RevokeRequest(BaseModel):
    """Token revocation request (RFC 7009)."""

    token: str = ""
    token_type_hint: str | None = None


class IntrospectRequest(BaseModel):
    """Token introspection request (RFC 7662)."""

    token: str = ""
    token_type_hint: str | None = None


class IntrospectResponse(BaseModel):
    active: bool
    client_id: str | None = None
    user_id: str | None = None
    scope: str | None = None
    exp: int | None = None
    token_type: str | None = None


class OAuthErrorResponse(BaseModel):
    error: str
    error_description: str = Field(default="")
