# Credential store entities.
# Created: 2026-02-20
#
# Timestamps are integer UNIX seconds (UTC). Codes and tokens are stored as
# SHA-256 digests; client secrets and API keys as bcrypt hashes.

from __future__ import annotations

from sqlalchemy import JSON, Boolean, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bookingx_api.db import Base


class OAuthClient(Base):
    """Registered OAuth2 client."""

    __tablename__ = "bkx_oauth_clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    client_secret_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    redirect_uris: Mapped[list[str]] = mapped_column(JSON, default=list)
    grant_types: Mapped[list[str]] = mapped_column(
        JSON, default=lambda: ["authorization_code", "refresh_token"]
    )
    scope: Mapped[str] = mapped_column(Text, default="")
    user_id: Mapped[str | None] = mapped_column(String(64), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)

    def allows_grant(self, grant_type: str) -> bool:
        return grant_type in (self.grant_types or [])


class AuthorizationCode(Base):
    """Short-lived, single-use authorization code."""

    __tablename__ = "bkx_oauth_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    client_id: Mapped[str] = mapped_column(String(80), index=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    redirect_uri: Mapped[str] = mapped_column(Text, default="")
    scope: Mapped[str] = mapped_column(Text, default="")
    code_challenge: Mapped[str | None] = mapped_column(String(128))
    code_challenge_method: Mapped[str | None] = mapped_column(String(10))
    expires_at: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)


class AccessToken(Base):
    """Bearer access token."""

    __tablename__ = "bkx_oauth_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    client_id: Mapped[str] = mapped_column(String(80), index=True, nullable=False)
    # None for client_credentials
    user_id: Mapped[str | None] = mapped_column(String(64), index=True)
    scope: Mapped[str] = mapped_column(Text, default="")
    expires_at: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)


class RefreshToken(Base):
    """Long-lived refresh token, rotated on every use."""

    __tablename__ = "bkx_oauth_refresh_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    client_id: Mapped[str] = mapped_column(String(80), index=True, nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(64))
    scope: Mapped[str] = mapped_column(Text, default="")
    expires_at: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)


class APIKey(Base):
    """Static API key record (no plaintext)."""

    __tablename__ = "bkx_api_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    secret_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    permissions: Mapped[list[str]] = mapped_column(JSON, default=list)
    rate_limit: Mapped[int | None] = mapped_column(Integer)  # None = default limit
    last_used: Mapped[int | None] = mapped_column(Integer)
    last_ip: Mapped[str | None] = mapped_column(String(45))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    expires_at: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class RateLimitCounter(Base):
    """Request count for one identifier/endpoint inside one fixed window."""

    __tablename__ = "bkx_rate_limits"
    __table_args__ = (
        UniqueConstraint(
            "identifier", "endpoint", "window_start", name="uq_rate_identifier_endpoint_window"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    window_start: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    requests: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
