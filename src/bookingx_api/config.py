# Settings for the access-control layer.
# Created: 2026-02-20
#
# Values come from BKX_API_* environment variables or a .env file.

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_prefix="BKX_API_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    database_url: str = "sqlite:///./bookingx_api.db"
    database_echo: bool = False

    # OAuth2 lifetimes (seconds)
    enable_oauth: bool = True
    access_token_ttl: int = 3600
    refresh_token_ttl: int = 86400 * 30
    auth_code_ttl: int = 600
    login_url: str = "/login"

    # API keys
    enable_api_keys: bool = True
    api_key_header: str = "X-API-Key"
    api_key_query_param: str = "api_key"

    # Client secrets and API keys are bcrypt hashed with this cost factor
    bcrypt_rounds: int = 12

    # Rate limiting
    default_rate_limit: int = 1000
    rate_limit_window: int = 3600
    protected_path_prefix: str = "/api"

    # Background sweeps
    enable_sweeper: bool = True
    sweep_interval_seconds: int = 300

    # Audit trail (JSONL); None keeps audit events in the process log only
    audit_log_path: Path | None = None

    # HTTP
    cors_allowed_origins: list[str] = []
    log_level: str = "INFO"


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset singleton (for testing)."""
    global _settings
    _settings = None
