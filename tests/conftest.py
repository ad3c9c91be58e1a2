# Shared fixtures: in-memory credential store, fake clock, low bcrypt cost.
# Created: 2026-02-20

import base64
import hashlib
import secrets

import pytest
from fastapi.testclient import TestClient

from bookingx_api.api.serve import create_api_app
from bookingx_api.config import Settings
from bookingx_api.security.audit import AuditLogger, set_audit_logger
from bookingx_api.services import build_services

# Aligned to both 60 s and 3600 s windows
WINDOW_START = 1_699_999_200
SESSION_HEADER = "X-Test-User"


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, now: float = WINDOW_START + 100):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_pkce_pair():
    """Generate a PKCE code_verifier and S256 code_challenge pair."""
    verifier = secrets.token_urlsafe(32)
    challenge = (
        base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
        .rstrip(b"=")
        .decode()
    )
    return verifier, challenge


def session_user(request):
    """Stand-in for the platform login system."""
    return request.headers.get(SESSION_HEADER)


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite://",
        "bcrypt_rounds": 4,
        "enable_sweeper": False,
        "audit_log_path": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture(autouse=True)
def audit_events():
    """Route audit events to a list instead of the configured log file."""
    events: list[dict] = []
    audit = AuditLogger()
    audit.on_log(events.append)
    set_audit_logger(audit)
    yield events
    set_audit_logger(None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def services(settings, clock):
    svc = build_services(settings, clock=clock)
    yield svc
    svc.dispose()


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def app(services):
    return create_api_app(services=services, user_resolver=session_user)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def oauth_client(services):
    """A confidential client allowed every grant. Returns (client, secret)."""
    return services.clients.create_client(
        name="Booking widget",
        redirect_uris=["https://app.example/cb", "https://app.example/alt"],
        user_id="owner-1",
        grant_types=["authorization_code", "refresh_token", "client_credentials"],
        scope="bookings:read bookings:write",
        client_id="c1",
    )
