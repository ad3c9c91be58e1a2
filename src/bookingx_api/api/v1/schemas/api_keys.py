# API key schemas.
# Created: 2026-02-20

from __future__ import annotations

from pydantic import BaseModel, Field

from bookingx_api.api.api_keys import DEFAULT_PERMISSIONS


class CreateKeyRequest(BaseModel):
    """Create a new API key."""

    name: str = Field(..., min_length=1, max_length=255)
    permissions: list[str] = Field(default_factory=lambda: list(DEFAULT_PERMISSIONS))
    rate_limit: int | None = Field(default=None, ge=0)
    expires_at: int | None = None  # UNIX seconds
    description: str = ""


class APIKeyInfo(BaseModel):
    """API key info (no secrets)."""

    key_id: str
    name: str
    description: str = ""
    permissions: list[str]
    rate_limit: int | None = None
    created_at: int
    last_used: int | None = None
    last_ip: str | None = None
    expires_at: int | None = None
    is_active: bool = True


class APIKeyCreatedResponse(APIKeyInfo):
    """Returned by create and rotate; the only time the key is visible."""

    key: str  # key_id + secret
