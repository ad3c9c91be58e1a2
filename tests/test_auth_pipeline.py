# Tests for the request authentication pipeline.
# Created: 2026-02-20

from unittest.mock import patch

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from starlette.requests import Request

from bookingx_api.api.deps import require_permission
from bookingx_api.api.serve import create_api_app
from bookingx_api.auth_pipeline import Identity, IdentityKind, has_permission
from bookingx_api.errors import StorageError
from bookingx_api.security.hashing import digest_token
from bookingx_api.services import build_services
from conftest import SESSION_HEADER, make_settings, session_user


@pytest.fixture
def authenticator(app):
    return app.state.authenticator


@pytest.fixture
def api_key(services):
    """A key holding only bookings:read. Returns (record, plaintext)."""
    return services.api_keys.create("reporting", user_id="u1", permissions=["bookings:read"])


@pytest.fixture
def bearer(services, oauth_client):
    result, error = services.oauth_server.token(
        "client_credentials", "c1", oauth_client[1], scope="bookings:read"
    )
    assert error is None
    return result["access_token"]


def _request(
    app=None, path="/api/v1/identity", headers=None, query=b"", client=("1.2.3.4", 5000)
):
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "root_path": "",
        "query_string": query,
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
        "server": ("testserver", 80),
        "scheme": "http",
    }
    if app is not None:
        scope["app"] = app
    return Request(scope)


def _whoami(client, **kwargs):
    resp = client.get("/api/v1/identity", **kwargs)
    assert resp.status_code == 200
    return resp.json()


# ===================== Identity resolution =====================


class TestResolveIdentity:
    def test_anonymous(self, client):
        data = _whoami(client)
        assert data["kind"] == "anonymous"
        assert data["permissions"] == []
        assert data["rate_limit"]["limit"] == 1000

    def test_session_user(self, client):
        data = _whoami(client, headers={SESSION_HEADER: "u7"})
        assert data["kind"] == "session"
        assert data["user_id"] == "u7"
        assert data["permissions"] == ["*"]

    def test_api_key_header(self, client, api_key):
        record, plaintext = api_key
        data = _whoami(client, headers={"X-API-Key": plaintext})
        assert data["kind"] == "api_key"
        assert data["key_id"] == record.key_id
        assert data["user_id"] == "u1"
        assert data["permissions"] == ["bookings:read"]

    def test_api_key_query_parameter(self, client, api_key):
        data = _whoami(client, params={"api_key": api_key[1]})
        assert data["kind"] == "api_key"

    def test_api_key_authorization_scheme(self, client, api_key):
        data = _whoami(client, headers={"Authorization": f"ApiKey {api_key[1]}"})
        assert data["kind"] == "api_key"

    def test_bearer_token(self, client, bearer):
        data = _whoami(client, headers={"Authorization": f"Bearer {bearer}"})
        assert data["kind"] == "oauth"
        assert data["client_id"] == "c1"
        assert data["user_id"] is None
        assert data["permissions"] == ["bookings:read"]

    def test_session_beats_api_key(self, client, api_key):
        data = _whoami(client, headers={SESSION_HEADER: "u7", "X-API-Key": api_key[1]})
        assert data["kind"] == "session"

    def test_session_keeps_presented_key(self, client, api_key):
        record, plaintext = api_key
        data = _whoami(client, headers={SESSION_HEADER: "u7", "X-API-Key": plaintext})
        assert data["kind"] == "session"
        assert data["user_id"] == "u7"
        assert data["key_id"] == record.key_id
        assert data["permissions"] == ["*"]

    def test_api_key_beats_bearer(self, client, api_key, bearer):
        data = _whoami(
            client, headers={"X-API-Key": api_key[1], "Authorization": f"Bearer {bearer}"}
        )
        assert data["kind"] == "api_key"

    def test_invalid_api_key_falls_through_to_bearer(self, client, bearer):
        data = _whoami(
            client,
            headers={
                "X-API-Key": "bkx_000000000000" + "0" * 48,
                "Authorization": f"Bearer {bearer}",
            },
        )
        assert data["kind"] == "oauth"

    def test_invalid_api_key_alone_is_anonymous(self, client):
        data = _whoami(client, headers={"X-API-Key": "garbage"})
        assert data["kind"] == "anonymous"

    def test_invalid_bearer_is_401(self, client):
        resp = client.get("/api/v1/identity", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "invalid_token"
        assert "invalid_token" in resp.headers["WWW-Authenticate"]

    def test_expired_bearer_is_401(self, client, bearer, clock):
        clock.advance(3600)
        resp = client.get("/api/v1/identity", headers={"Authorization": f"Bearer {bearer}"})
        assert resp.status_code == 401

    def test_api_keys_disabled(self, clock):
        services = build_services(make_settings(enable_api_keys=False), clock=clock)
        try:
            _, plaintext = services.api_keys.create("k", user_id="u1")
            client = TestClient(create_api_app(services=services, user_resolver=session_user))
            assert _whoami(client, headers={"X-API-Key": plaintext})["kind"] == "anonymous"
            resp = client.get("/api/v1/auth/api-keys", headers={SESSION_HEADER: "u1"})
            assert resp.status_code == 404
        finally:
            services.dispose()


# ===================== Rate-limit identifier =====================


class TestRateLimitIdentifier:
    def test_key_identity(self, authenticator):
        identity = Identity(kind=IdentityKind.API_KEY, user_id="u1", key_id="bkx_0123456789ab")
        assert authenticator.rate_limit_identifier(identity, _request()) == "key:bkx_0123456789ab"

    def test_session_with_key(self, authenticator):
        identity = Identity(kind=IdentityKind.SESSION, user_id="u1", key_id="bkx_0123456789ab")
        assert authenticator.rate_limit_identifier(identity, _request()) == "key:bkx_0123456789ab"

    def test_well_formed_bearer(self, authenticator, bearer):
        identity = Identity(kind=IdentityKind.OAUTH, user_id="u1", client_id="c1")
        request = _request(headers={"Authorization": f"Bearer {bearer}"})
        expected = f"token:{digest_token(bearer)[:32]}"
        assert authenticator.rate_limit_identifier(identity, request) == expected

    def test_malformed_bearer_uses_user(self, authenticator):
        identity = Identity(kind=IdentityKind.SESSION, user_id="u1")
        request = _request(headers={"Authorization": "Bearer something-else"})
        assert authenticator.rate_limit_identifier(identity, request) == "user:u1"

    def test_session_user(self, authenticator):
        identity = Identity(kind=IdentityKind.SESSION, user_id="u1")
        assert authenticator.rate_limit_identifier(identity, _request()) == "user:u1"

    def test_anonymous_uses_ip(self, authenticator):
        assert authenticator.rate_limit_identifier(Identity.anonymous(), _request()) == "ip:1.2.3.4"

    def test_no_client_address(self, authenticator):
        request = _request(client=None)
        assert authenticator.rate_limit_identifier(Identity.anonymous(), request) == "ip:unknown"


class TestEndpointFor:
    def test_route_template(self, app, authenticator):
        request = _request(app, path="/api/v1/auth/api-keys/bkx_0123456789ab")
        assert authenticator.endpoint_for(request) == "/api/v1/auth/api-keys/{key_id}"

    def test_unrouted_path(self, app, authenticator):
        long_path = "/api/" + "x" * 400
        request = _request(app, path=long_path)
        assert authenticator.endpoint_for(request) == long_path[:255]


class TestMiddlewareFailures:
    def test_storage_error_is_500(self, client, services):
        with patch.object(services.rate_limiter, "check", side_effect=StorageError("db down")):
            resp = client.get("/api/v1/identity")
        assert resp.status_code == 500
        assert resp.json()["error"] == "server_error"
        assert "db down" not in resp.text


# ===================== Permissions =====================


class TestHasPermission:
    def test_anonymous_has_nothing(self):
        assert not has_permission(Identity.anonymous(), "bookings:read")

    def test_session_has_everything(self):
        identity = Identity(kind=IdentityKind.SESSION, user_id="u1", permissions=frozenset({"*"}))
        assert has_permission(identity, "reports:read")

    def test_granted_only(self):
        identity = Identity(
            kind=IdentityKind.API_KEY, key_id="k", permissions=frozenset({"bookings:read"})
        )
        assert has_permission(identity, "bookings:read")
        assert not has_permission(identity, "bookings:write")


class TestRequirePermission:
    @pytest.fixture
    def probe(self, app):
        @app.get("/api/v1/probe/bookings")
        async def list_bookings(identity: Identity = Depends(require_permission("bookings:read"))):
            return {"kind": identity.kind.value}

        @app.get("/api/v1/probe/either")
        async def either(
            identity: Identity = Depends(require_permission("bookings:write", "bookings:read")),
        ):
            return {"kind": identity.kind.value}

        @app.get("/api/v1/probe/reports")
        async def reports(identity: Identity = Depends(require_permission("reports:read"))):
            return {"kind": identity.kind.value}

        return app

    def test_anonymous_is_401(self, probe, client):
        assert client.get("/api/v1/probe/bookings").status_code == 401

    def test_session_passes(self, probe, client):
        resp = client.get("/api/v1/probe/reports", headers={SESSION_HEADER: "u1"})
        assert resp.status_code == 200
        assert resp.json() == {"kind": "session"}

    def test_api_key_permissions(self, probe, client, api_key):
        headers = {"X-API-Key": api_key[1]}
        assert client.get("/api/v1/probe/bookings", headers=headers).status_code == 200
        assert client.get("/api/v1/probe/either", headers=headers).status_code == 200
        assert client.get("/api/v1/probe/reports", headers=headers).status_code == 403

    def test_oauth_scopes(self, probe, client, bearer):
        headers = {"Authorization": f"Bearer {bearer}"}
        assert client.get("/api/v1/probe/bookings", headers=headers).status_code == 200
        assert client.get("/api/v1/probe/reports", headers=headers).status_code == 403
