# OAuth2 client schemas.
# Created: 2026-02-20

from __future__ import annotations

from pydantic import BaseModel, Field


class CreateClientRequest(BaseModel):
    """Register a new OAuth2 client."""

    name: str = Field(..., min_length=1, max_length=255)
    redirect_uris: list[str] = Field(default_factory=list)
    grant_types: list[str] | None = None
    scope: str = ""
    description: str = ""


class ClientInfo(BaseModel):
    """Client info (no secrets)."""

    client_id: str
    name: str
    description: str = ""
    redirect_uris: list[str]
    grant_types: list[str]
    scope: str = ""
    is_active: bool
    created_at: int
    updated_at: int | None = None


class ClientCreatedResponse(ClientInfo):
    """Returned once, at registration."""

    client_secret: str


class ClientSecretResponse(BaseModel):
    client_id: str
    client_secret: str
