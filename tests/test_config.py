# Tests for settings loading.
# Created: 2026-02-20

import pytest

from bookingx_api.config import Settings, get_settings, reset_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


class TestSettings:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        settings = Settings()
        assert settings.access_token_ttl == 3600
        assert settings.refresh_token_ttl == 86400 * 30
        assert settings.auth_code_ttl == 600
        assert settings.default_rate_limit == 1000
        assert settings.rate_limit_window == 3600
        assert settings.api_key_header == "X-API-Key"
        assert settings.cors_allowed_origins == []

    def test_environment_prefix(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("BKX_API_DEFAULT_RATE_LIMIT", "50")
        monkeypatch.setenv("BKX_API_ENABLE_OAUTH", "false")
        monkeypatch.setenv("BKX_API_CORS_ALLOWED_ORIGINS", '["https://shop.example"]')
        settings = get_settings()
        assert settings.default_rate_limit == 50
        assert settings.enable_oauth is False
        assert settings.cors_allowed_origins == ["https://shop.example"]

    def test_dotenv_file(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("BKX_API_RATE_LIMIT_WINDOW=60\nUNRELATED=1\n")
        assert Settings().rate_limit_window == 60

    def test_singleton_and_reset(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        first = get_settings()
        assert get_settings() is first
        monkeypatch.setenv("BKX_API_LOGIN_URL", "/accounts/login")
        assert get_settings().login_url == "/login"
        reset_settings()
        assert get_settings().login_url == "/accounts/login"
