# Tests for OAuth2 client registration and management.
# Created: 2026-02-20

import pytest

from bookingx_api.api.oauth2.clients import DEFAULT_GRANT_TYPES
from conftest import SESSION_HEADER

OWNER = {SESSION_HEADER: "owner-1"}


def _register(client, headers=OWNER, **overrides):
    body = {"name": "Widget", "redirect_uris": ["https://w.example/cb"], "scope": "bookings:read"}
    body.update(overrides)
    return client.post("/api/v1/oauth/clients", json=body, headers=headers)


def _client_credentials(client, secret):
    return client.post(
        "/api/v1/oauth/token",
        data={"grant_type": "client_credentials", "client_id": "c1", "client_secret": secret},
    )


# ===================== ClientRegistry unit tests =====================


class TestClientRegistry:
    def test_create_client(self, services):
        record, secret = services.clients.create_client("Widget", ["https://w.example/cb"])
        assert record.client_id.startswith("bkx_")
        assert len(record.client_id) == 4 + 32
        assert len(secret) == 64
        assert record.grant_types == DEFAULT_GRANT_TYPES
        assert record.client_secret_hash.startswith("$2")
        assert secret not in record.client_secret_hash

    def test_secret_validates(self, services):
        record, secret = services.clients.create_client("Widget", ["https://w.example/cb"])
        found, error = services.oauth_server.validate_client(record.client_id, secret)
        assert error is None
        assert found.client_id == record.client_id

    def test_unknown_grant_type(self, services):
        with pytest.raises(ValueError, match="Invalid grant types"):
            services.clients.create_client("w", ["https://w.example/cb"], grant_types=["implicit"])

    def test_scope_must_be_grantable(self, services):
        with pytest.raises(ValueError, match="Invalid scopes"):
            services.clients.create_client("w", ["https://w.example/cb"], scope="*")
        with pytest.raises(ValueError, match="Invalid scopes"):
            services.clients.create_client("w", ["https://w.example/cb"], scope="admin")

    def test_code_grant_needs_redirect(self, services):
        with pytest.raises(ValueError, match="redirect URI"):
            services.clients.create_client("w", [])

    def test_machine_client_needs_no_redirect(self, services):
        record, _ = services.clients.create_client(
            "batch", [], grant_types=["client_credentials"]
        )
        assert record.redirect_uris == []

    def test_duplicate_client_id(self, services, oauth_client):
        with pytest.raises(ValueError, match="already exists"):
            services.clients.create_client("again", ["https://w.example/cb"], client_id="c1")

    def test_rotate_secret(self, services, oauth_client):
        _, old_secret = oauth_client
        new_secret = services.clients.rotate_secret("c1")
        assert new_secret != old_secret
        assert services.oauth_server.validate_client("c1", old_secret)[0] is None
        assert services.oauth_server.validate_client("c1", new_secret)[0] is not None

    def test_rotate_unknown(self, services):
        assert services.clients.rotate_secret("nope") is None

    def test_disable_and_enable(self, services, oauth_client, audit_events):
        _, secret = oauth_client
        assert services.clients.set_active("c1", False).is_active is False
        assert services.oauth_server.validate_client("c1", secret)[0] is None
        assert services.clients.set_active("c1", True).is_active is True
        assert services.oauth_server.validate_client("c1", secret)[0] is not None
        actions = [e["action"] for e in audit_events]
        assert actions[-2:] == ["oauth_client_disabled", "oauth_client_enabled"]

    def test_set_active_unknown(self, services):
        assert services.clients.set_active("nope", False) is None


# ===================== Client REST endpoints =====================


class TestClientEndpoints:
    def test_register(self, client):
        resp = _register(client)
        assert resp.status_code == 200
        data = resp.json()
        assert data["client_secret"]
        assert data["client_id"].startswith("bkx_")
        assert data["is_active"] is True
        assert data["scope"] == "bookings:read"

    def test_register_requires_session(self, client, services):
        assert _register(client, headers={}).status_code == 401
        _, key = services.api_keys.create("k", user_id="owner-1", permissions=["*"])
        assert _register(client, headers={"X-API-Key": key}).status_code == 403

    def test_register_invalid(self, client):
        assert _register(client, redirect_uris=[]).status_code == 400
        assert _register(client, grant_types=["password"]).status_code == 400
        assert _register(client, scope="bookings:read *").status_code == 400
        assert _register(client, name="").status_code == 422

    def test_list_only_own_clients(self, client, oauth_client):
        _register(client, headers={SESSION_HEADER: "someone-else"})
        resp = client.get("/api/v1/oauth/clients", headers=OWNER)
        assert resp.status_code == 200
        assert [c["client_id"] for c in resp.json()] == ["c1"]
        assert "client_secret" not in resp.text

    def test_rotate_secret(self, client, services, oauth_client):
        _, old_secret = oauth_client
        resp = client.post("/api/v1/oauth/clients/c1/rotate-secret", headers=OWNER)
        assert resp.status_code == 200
        new_secret = resp.json()["client_secret"]

        assert _client_credentials(client, old_secret).status_code == 401
        assert _client_credentials(client, new_secret).status_code == 200

    def test_disable_then_enable(self, client, oauth_client):
        resp = client.post("/api/v1/oauth/clients/c1/disable", headers=OWNER)
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False
        resp = client.post("/api/v1/oauth/clients/c1/enable", headers=OWNER)
        assert resp.json()["is_active"] is True

    def test_other_users_client_is_hidden(self, client, oauth_client):
        intruder = {SESSION_HEADER: "intruder"}
        assert client.post("/api/v1/oauth/clients/c1/disable", headers=intruder).status_code == 404
        resp = client.post("/api/v1/oauth/clients/c1/rotate-secret", headers=intruder)
        assert resp.status_code == 404

    def test_unknown_client(self, client):
        resp = client.post("/api/v1/oauth/clients/nope/enable", headers=OWNER)
        assert resp.status_code == 404
