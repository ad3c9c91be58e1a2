# Identity schemas.
# Created: 2026-02-20

from __future__ import annotations

from pydantic import BaseModel


class RateLimitStatus(BaseModel):
    limit: int
    remaining: int
    reset: int


class IdentityResponse(BaseModel):
    """Who the caller was resolved as, and what it may do."""

    kind: str
    user_id: str | None = None
    key_id: str | None = None
    client_id: str | None = None
    permissions: list[str] = []
    rate_limit: RateLimitStatus | None = None
