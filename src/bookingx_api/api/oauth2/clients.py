# OAuth2 client registry — register, rotate secret, enable/disable.
# Created: 2026-02-20
#
# Clients are never deleted while tokens may reference them; disabling is the
# only way to retire one. The client secret is shown once at creation and on
# rotation; only its bcrypt hash is stored.

from __future__ import annotations

import logging
import secrets

from bookingx_api.api.oauth2.codes import OAUTH_SCOPES
from bookingx_api.api.oauth2.models import GrantType
from bookingx_api.security.audit import AuditSeverity, get_audit_logger
from bookingx_api.security.hashing import hash_secret
from bookingx_api.store.models import OAuthClient
from bookingx_api.store.protocol import CredentialStoreProtocol

logger = logging.getLogger(__name__)

DEFAULT_GRANT_TYPES = [GrantType.AUTHORIZATION_CODE.value, GrantType.REFRESH_TOKEN.value]


class ClientRegistry:
    """Administrative operations on OAuth2 clients."""

    def __init__(self, store: CredentialStoreProtocol, hash_rounds: int = 12):
        self.store = store
        self._hash_rounds = hash_rounds

    def create_client(
        self,
        name: str,
        redirect_uris: list[str],
        user_id: str | None = None,
        grant_types: list[str] | None = None,
        scope: str = "",
        description: str = "",
        client_id: str | None = None,
    ) -> tuple[OAuthClient, str]:
        """Register a client. Returns (client, plaintext_secret)."""
        grant_types = grant_types or list(DEFAULT_GRANT_TYPES)
        unknown = [g for g in grant_types if GrantType.parse(g) is None]
        if unknown:
            raise ValueError(f"Invalid grant types: {unknown}")

        invalid_scopes = set(scope.split()) - OAUTH_SCOPES
        if invalid_scopes:
            raise ValueError(f"Invalid scopes: {sorted(invalid_scopes)}")

        redirect_uris = [u.strip() for u in redirect_uris if u.strip()]
        if GrantType.AUTHORIZATION_CODE.value in grant_types and not redirect_uris:
            raise ValueError("At least one redirect URI is required")

        client_id = client_id or f"bkx_{secrets.token_hex(16)}"
        if self.store.get_client(client_id) is not None:
            raise ValueError(f"Client {client_id} already exists")

        client_secret = secrets.token_hex(32)
        client = self.store.save_client(
            OAuthClient(
                client_id=client_id,
                client_secret_hash=hash_secret(client_secret, rounds=self._hash_rounds),
                name=name,
                description=description,
                redirect_uris=redirect_uris,
                grant_types=grant_types,
                scope=scope,
                user_id=user_id,
                is_active=True,
            )
        )
        get_audit_logger().log_api_event(
            action="oauth_client_created",
            target=f"client:{client_id}",
            actor=user_id,
            client_name=name,
            grant_types=grant_types,
        )
        return client, client_secret

    def rotate_secret(self, client_id: str) -> str | None:
        """Replace the client's secret. Returns the new plaintext, or None if unknown."""
        client = self.store.get_client(client_id)
        if client is None:
            return None
        client_secret = secrets.token_hex(32)
        client.client_secret_hash = hash_secret(client_secret, rounds=self._hash_rounds)
        self.store.save_client(client)
        get_audit_logger().log_api_event(
            action="oauth_client_secret_rotated",
            target=f"client:{client_id}",
            actor=client.user_id,
            severity=AuditSeverity.WARNING,
        )
        return client_secret

    def set_active(self, client_id: str, active: bool) -> OAuthClient | None:
        client = self.store.get_client(client_id)
        if client is None:
            return None
        if client.is_active != active:
            client.is_active = active
            client = self.store.save_client(client)
            get_audit_logger().log_api_event(
                action="oauth_client_enabled" if active else "oauth_client_disabled",
                target=f"client:{client_id}",
                actor=client.user_id,
                severity=AuditSeverity.INFO if active else AuditSeverity.WARNING,
            )
        return client

    def get(self, client_id: str) -> OAuthClient | None:
        return self.store.get_client(client_id)

    def list_clients(self, user_id: str | None = None) -> list[OAuthClient]:
        return self.store.list_clients(user_id)
