# OAuth2 token lifecycle — token grants, validation, revocation, introspection.
# Created: 2026-02-20
#
# Grants: authorization_code (with PKCE via AuthorizationCodeIssuer),
# refresh_token (single-use rotation) and client_credentials (no user, no
# refresh token). Expected failures come back as (None, OAuthError).

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable

from bookingx_api.api.oauth2.codes import AuthorizationCodeIssuer, scope_within
from bookingx_api.api.oauth2.models import GrantType, TokenGrant, TokenInfo, TokenTypeHint
from bookingx_api.errors import OAuthError
from bookingx_api.security.audit import AuditSeverity, get_audit_logger
from bookingx_api.security.hashing import generate_token, hash_secret, verify_secret
from bookingx_api.store.models import OAuthClient
from bookingx_api.store.protocol import CredentialStoreProtocol

logger = logging.getLogger(__name__)

# Token lifetimes (seconds)
ACCESS_TOKEN_TTL = 3600
REFRESH_TOKEN_TTL = 86400 * 30

ACCESS_TOKEN_PREFIX = "bkxat_"
REFRESH_TOKEN_PREFIX = "bkxrt_"

TokenResult = tuple[dict | None, OAuthError | None]
GrantResult = tuple[TokenGrant | None, OAuthError | None]


class AuthorizationServer:
    """OAuth2 token endpoint logic."""

    def __init__(
        self,
        store: CredentialStoreProtocol,
        issuer: AuthorizationCodeIssuer | None = None,
        access_token_ttl: int = ACCESS_TOKEN_TTL,
        refresh_token_ttl: int = REFRESH_TOKEN_TTL,
        clock: Callable[[], float] = time.time,
        hash_rounds: int = 12,
    ):
        self.store = store
        self.issuer = issuer or AuthorizationCodeIssuer(store, clock=clock)
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl
        self._clock = clock
        # Checked when the client_id is unknown, so a miss costs the same bcrypt work as a hit
        self._dummy_secret_hash = hash_secret(secrets.token_hex(16), rounds=hash_rounds)
        self._grant_handlers: dict[GrantType, Callable[..., GrantResult]] = {
            GrantType.AUTHORIZATION_CODE: self._authorization_code_grant,
            GrantType.REFRESH_TOKEN: self._refresh_token_grant,
            GrantType.CLIENT_CREDENTIALS: self._client_credentials_grant,
        }

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    def token(
        self,
        grant_type: str | None,
        client_id: str | None,
        client_secret: str | None,
        code: str | None = None,
        redirect_uri: str | None = None,
        code_verifier: str | None = None,
        refresh_token: str | None = None,
        scope: str | None = None,
    ) -> TokenResult:
        """Run one token grant.

        Returns (token_dict, error).
        """
        grant = GrantType.parse(grant_type)
        if grant is None:
            return None, OAuthError.UNSUPPORTED_GRANT_TYPE

        client, error = self.validate_client(client_id, client_secret)
        if error:
            return None, error
        if not client.allows_grant(grant.value):
            return None, OAuthError.UNAUTHORIZED_CLIENT

        handler = self._grant_handlers[grant]
        # The consumed code or refresh token and the new tokens commit together
        with self.store.atomic():
            granted, error = handler(
                client=client,
                code=code,
                redirect_uri=redirect_uri,
                code_verifier=code_verifier,
                refresh_token=refresh_token,
                scope=scope,
            )
            if error:
                return None, error
            result = self._issue(granted)

        get_audit_logger().log_api_event(
            action="oauth_token",
            target=f"client:{granted.client_id}",
            actor=granted.user_id or granted.client_id,
            scope=granted.scope,
            refresh=granted.include_refresh,
        )
        return result, None

    def validate_client(
        self, client_id: str | None, client_secret: str | None
    ) -> tuple[OAuthClient | None, OAuthError | None]:
        """Authenticate a client by id + secret (bcrypt, constant time)."""
        client = self.store.get_client(client_id) if client_id else None
        secret_hash = client.client_secret_hash if client is not None else self._dummy_secret_hash
        secret_ok = verify_secret(client_secret or "", secret_hash)

        if client is None or not client.is_active or not secret_ok:
            logger.debug("Client authentication failed for %r", client_id)
            return None, OAuthError.INVALID_CLIENT
        return client, None

    def _authorization_code_grant(
        self, client: OAuthClient, code, redirect_uri, code_verifier, **_
    ) -> GrantResult:
        grant, error = self.issuer.exchange(
            code=code or "",
            client_id=client.client_id,
            redirect_uri=redirect_uri,
            code_verifier=code_verifier,
        )
        if error:
            return None, error
        return TokenGrant(client.client_id, grant.user_id, grant.scope), None

    def _refresh_token_grant(self, client: OAuthClient, refresh_token, **_) -> GrantResult:
        if not refresh_token:
            return None, OAuthError.INVALID_REQUEST
        old = self.store.find_and_delete_refresh_token(refresh_token, client.client_id)
        if old is None:
            logger.debug("Refresh token unknown, expired or used (client %s)", client.client_id)
            return None, OAuthError.INVALID_GRANT
        return TokenGrant(client.client_id, old.user_id, old.scope), None

    def _client_credentials_grant(self, client: OAuthClient, scope, **_) -> GrantResult:
        scope = scope if scope is not None else client.scope
        if not scope_within(scope, client.scope):
            return None, OAuthError.INVALID_SCOPE
        # Client credentials don't have a user context
        return TokenGrant(client.client_id, None, scope, include_refresh=False), None

    def _issue(self, granted: TokenGrant) -> dict:
        now = int(self._clock())
        access_token = generate_token(ACCESS_TOKEN_PREFIX)
        self.store.create_access_token(
            access_token,
            granted.client_id,
            granted.user_id,
            granted.scope,
            now + self.access_token_ttl,
        )
        result = {
            "access_token": access_token,
            "token_type": "Bearer",
            "expires_in": self.access_token_ttl,
            "scope": granted.scope,
        }
        if granted.include_refresh:
            refresh_token = generate_token(REFRESH_TOKEN_PREFIX)
            self.store.create_refresh_token(
                refresh_token,
                granted.client_id,
                granted.user_id,
                granted.scope,
                now + self.refresh_token_ttl,
            )
            result["refresh_token"] = refresh_token
        return result

    # ------------------------------------------------------------------
    # Validation, revocation, introspection
    # ------------------------------------------------------------------

    def validate_access_token(self, access_token: str) -> TokenInfo | None:
        """Look up an unexpired access token. No side effects."""
        if not access_token:
            return None
        token = self.store.find_access_token(access_token)
        if token is None:
            return None
        return TokenInfo(
            client_id=token.client_id,
            user_id=token.user_id,
            scope=token.scope,
            expires_at=token.expires_at,
        )

    def revoke(self, token: str, token_type_hint: str | None = None) -> bool:
        """Revoke an access or refresh token. Always True (idempotent)."""
        if not token:
            return True
        hint = TokenTypeHint.parse(token_type_hint)
        removed = False
        if hint in (None, TokenTypeHint.ACCESS_TOKEN):
            removed = self.store.delete_access_token(token) or removed
        if hint in (None, TokenTypeHint.REFRESH_TOKEN):
            removed = self.store.delete_refresh_token(token) or removed
        if removed:
            get_audit_logger().log_api_event(
                action="oauth_token_revoked",
                target="token",
                severity=AuditSeverity.WARNING,
                hint=hint.value if hint else None,
            )
        return True

    def introspect(self, token: str, token_type_hint: str | None = None) -> dict:
        """Describe a token; unknown or expired tokens are simply inactive."""
        if not token:
            return {"active": False}
        hint = TokenTypeHint.parse(token_type_hint)

        info: TokenInfo | None = None
        if hint in (None, TokenTypeHint.ACCESS_TOKEN):
            info = self.validate_access_token(token)
        if info is None and hint in (None, TokenTypeHint.REFRESH_TOKEN):
            refresh = self.store.find_refresh_token(token)
            if refresh is not None:
                info = TokenInfo(
                    client_id=refresh.client_id,
                    user_id=refresh.user_id,
                    scope=refresh.scope,
                    expires_at=refresh.expires_at,
                    token_type=TokenTypeHint.REFRESH_TOKEN.value,
                )

        if info is None:
            return {"active": False}
        return {
            "active": True,
            "client_id": info.client_id,
            "user_id": info.user_id,
            "scope": info.scope,
            "exp": info.expires_at,
            "token_type": info.token_type,
        }
