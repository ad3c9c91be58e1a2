# API Key Manager — create, authenticate, revoke, rotate, list.
# Created: 2026-02-20
#
# Key format: <key_id><secret>, where key_id is a fixed 16-char public prefix
# (bkx_ + 12 hex) stored in plaintext for lookup, and secret is 48 hex chars.
# Only a bcrypt hash of the full key is stored; the plaintext is shown once,
# at creation or rotation.

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable, Iterable

from bookingx_api.errors import StorageError
from bookingx_api.security.audit import get_audit_logger
from bookingx_api.security.hashing import hash_secret, verify_secret
from bookingx_api.store.models import APIKey
from bookingx_api.store.protocol import CredentialStoreProtocol

logger = logging.getLogger(__name__)

_PREFIX = "bkx_"
KEY_ID_LENGTH = 16
_SECRET_BYTES = 24  # 48 hex chars; full key stays under bcrypt's 72-byte limit

WILDCARD = "*"

# Valid permissions
VALID_PERMISSIONS = frozenset(
    {
        WILDCARD,
        "bookings:read",
        "bookings:write",
        "services:read",
        "services:write",
        "staff:read",
        "staff:write",
        "customers:read",
        "reports:read",
        "webhooks:manage",
        "graphql",
    }
)

DEFAULT_PERMISSIONS = ["bookings:read", "services:read", "staff:read"]


def split_key(presented: str) -> tuple[str, str] | None:
    """Split a presented key into (key_id, secret); None if malformed."""
    if not presented.startswith(_PREFIX) or len(presented) <= KEY_ID_LENGTH:
        return None
    return presented[:KEY_ID_LENGTH], presented[KEY_ID_LENGTH:]


def has_permission(permissions: Iterable[str], permission: str) -> bool:
    """Exact match or the ``*`` wildcard."""
    granted = set(permissions)
    return WILDCARD in granted or permission in granted


class APIKeyManager:
    """Manages API keys on top of the credential store."""

    def __init__(
        self,
        store: CredentialStoreProtocol,
        hash_rounds: int = 12,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self._hash_rounds = hash_rounds
        self._clock = clock

    def create(
        self,
        name: str,
        user_id: str,
        permissions: list[str] | None = None,
        rate_limit: int | None = None,
        expires_at: int | None = None,
        description: str = "",
    ) -> tuple[APIKey, str]:
        """Create a new API key. Returns (record, plaintext_key).

        The plaintext key cannot be recovered after this call.
        """
        if permissions is None:
            permissions = list(DEFAULT_PERMISSIONS)

        invalid = set(permissions) - VALID_PERMISSIONS
        if invalid:
            raise ValueError(f"Invalid permissions: {sorted(invalid)}")
        if rate_limit is not None and rate_limit < 0:
            raise ValueError("rate_limit must be >= 0")

        key_id = f"{_PREFIX}{secrets.token_hex((KEY_ID_LENGTH - len(_PREFIX)) // 2)}"
        plaintext = f"{key_id}{secrets.token_hex(_SECRET_BYTES)}"

        record = self.store.save_api_key(
            APIKey(
                key_id=key_id,
                secret_hash=hash_secret(plaintext, rounds=self._hash_rounds),
                name=name,
                description=description,
                user_id=user_id,
                permissions=permissions,
                rate_limit=rate_limit,
                is_active=True,
                expires_at=expires_at,
                created_at=int(self._clock()),
            )
        )

        get_audit_logger().log_api_event(
            action="api_key_created",
            target=f"key:{key_id}",
            actor=user_id,
            key_name=name,
            permissions=permissions,
        )
        return record, plaintext

    def authenticate(self, presented_key: str, origin: str | None = None) -> APIKey | None:
        """Resolve a presented key to its record, or None.

        Unknown, inactive, expired and wrong-secret keys all return None; only
        storage failures raise.
        """
        parts = split_key(presented_key)
        if parts is None:
            return None
        key_id, _ = parts

        record = self.store.find_api_key(key_id)
        if record is None:
            return None
        if not record.is_active or record.is_expired(self._clock()):
            logger.debug("API key %s is inactive or expired", key_id)
            return None
        if not verify_secret(presented_key, record.secret_hash):
            logger.debug("API key %s presented with a wrong secret", key_id)
            return None

        try:
            self.store.touch_api_key_usage(key_id, origin)
        except StorageError:
            logger.warning("Could not record usage of API key %s", key_id)
        return record

    def revoke(self, key_id: str) -> bool:
        """Deactivate an API key. Returns True if found and active."""
        record = self.store.find_api_key(key_id)
        if record is None or not record.is_active:
            return False
        record.is_active = False
        self.store.save_api_key(record)
        get_audit_logger().log_api_event(
            action="api_key_revoked",
            target=f"key:{key_id}",
            actor=record.user_id,
            key_name=record.name,
        )
        return True

    def rotate(self, key_id: str) -> tuple[APIKey, str] | None:
        """Revoke an existing key and create a new one with the same settings."""
        old = self.store.find_api_key(key_id)
        if old is None or not old.is_active:
            return None
        self.revoke(key_id)
        return self.create(
            name=old.name,
            user_id=old.user_id,
            permissions=list(old.permissions),
            rate_limit=old.rate_limit,
            expires_at=old.expires_at,
            description=old.description,
        )

    def list_keys(self, user_id: str | None = None) -> list[APIKey]:
        """List API keys (hashes only, never secrets)."""
        return self.store.list_api_keys(user_id)

    def get(self, key_id: str) -> APIKey | None:
        return self.store.find_api_key(key_id)
