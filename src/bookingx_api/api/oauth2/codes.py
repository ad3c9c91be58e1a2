# Authorization code issuer with PKCE support.
# Created: 2026-02-20
#
# Implements the authorize + code exchange half of the authorization code
# flow, with optional PKCE (RFC 7636, plain and S256).
#
# A code is burned by the first exchange attempt that finds it: the atomic
# consume happens before the PKCE check, so a wrong verifier cannot be
# retried against the same code.

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
import time
from collections.abc import Callable

from bookingx_api.api.api_keys import VALID_PERMISSIONS, WILDCARD
from bookingx_api.api.oauth2.models import (
    AuthorizationGrant,
    ChallengeMethod,
    CodeGrant,
    GrantType,
)
from bookingx_api.errors import OAuthError
from bookingx_api.security.hashing import constant_time_equals
from bookingx_api.store.models import OAuthClient
from bookingx_api.store.protocol import CredentialStoreProtocol

logger = logging.getLogger(__name__)

CODE_TTL = 600  # seconds

# Scopes an OAuth token may carry. The wildcard stays with sessions and API keys.
OAUTH_SCOPES = VALID_PERMISSIONS - {WILDCARD}


def s256_challenge(code_verifier: str) -> str:
    """BASE64URL(SHA256(code_verifier)) without padding."""
    return (
        base64.urlsafe_b64encode(hashlib.sha256(code_verifier.encode()).digest())
        .rstrip(b"=")
        .decode()
    )


def verify_pkce(code_verifier: str, code_challenge: str, method: str | None) -> bool:
    """Constant-time PKCE check. Unknown methods never verify."""
    if method == ChallengeMethod.S256.value:
        computed = s256_challenge(code_verifier)
    elif method in (None, ChallengeMethod.PLAIN.value):
        computed = code_verifier
    else:
        return False
    return constant_time_equals(computed, code_challenge)


def scope_within(requested: str, allowed: str) -> bool:
    """True if every requested scope is grantable and allowed.

    An empty allow-list allows any of OAUTH_SCOPES, never the wildcard.
    """
    wanted = set(requested.split())
    if not wanted <= OAUTH_SCOPES:
        return False
    return not allowed or wanted <= set(allowed.split())


class AuthorizationCodeIssuer:
    """Issues and redeems single-use authorization codes."""

    def __init__(
        self,
        store: CredentialStoreProtocol,
        code_ttl: int = CODE_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.code_ttl = code_ttl
        self._clock = clock

    def _check_client(
        self, client_id: str, redirect_uri: str | None
    ) -> tuple[OAuthClient | None, str, OAuthError | None]:
        client = self.store.get_client(client_id) if client_id else None
        if client is None or not client.is_active:
            return None, "", OAuthError.INVALID_CLIENT

        # Exact string match, never a prefix match
        if redirect_uri and redirect_uri not in client.redirect_uris:
            return None, "", OAuthError.INVALID_REDIRECT_URI
        resolved_uri = redirect_uri or (client.redirect_uris[0] if client.redirect_uris else "")
        if not resolved_uri:
            return None, "", OAuthError.INVALID_REDIRECT_URI
        return client, resolved_uri, None

    def resolve_redirect_uri(
        self, client_id: str, redirect_uri: str | None
    ) -> tuple[str | None, OAuthError | None]:
        """The URI errors may be redirected to, or the reason there is none.

        Only an active client's registered URI is ever returned.
        """
        _, resolved_uri, error = self._check_client(client_id, redirect_uri)
        if error:
            return None, error
        return resolved_uri, None

    def authorize(
        self,
        client_id: str,
        redirect_uri: str | None,
        scope: str | None,
        code_challenge: str | None = None,
        code_challenge_method: str | None = None,
        user_id: str | None = None,
    ) -> tuple[AuthorizationGrant | None, OAuthError | None]:
        """Create an authorization code for an authenticated user.

        Returns (grant, error). If error is not None, grant is None.
        """
        client, resolved_uri, error = self._check_client(client_id, redirect_uri)
        if error:
            return None, error

        if not client.allows_grant(GrantType.AUTHORIZATION_CODE.value):
            return None, OAuthError.UNAUTHORIZED_CLIENT

        if code_challenge:
            method = code_challenge_method or ChallengeMethod.PLAIN.value
            if method not in {m.value for m in ChallengeMethod}:
                return None, OAuthError.INVALID_REQUEST
        elif code_challenge_method:
            return None, OAuthError.INVALID_REQUEST
        else:
            method = None

        scope = scope if scope is not None else client.scope
        if not scope_within(scope, client.scope):
            return None, OAuthError.INVALID_SCOPE

        if not user_id:
            return None, OAuthError.LOGIN_REQUIRED

        code = secrets.token_urlsafe(32)
        self.store.create_auth_code(
            code=code,
            client_id=client_id,
            user_id=user_id,
            redirect_uri=resolved_uri,
            scope=scope,
            code_challenge=code_challenge or None,
            code_challenge_method=method,
            expires_at=int(self._clock()) + self.code_ttl,
        )
        logger.debug("Issued authorization code for client %s, user %s", client_id, user_id)
        return AuthorizationGrant(code=code, redirect_uri=resolved_uri), None

    def exchange(
        self,
        code: str,
        client_id: str,
        redirect_uri: str | None = None,
        code_verifier: str | None = None,
    ) -> tuple[CodeGrant | None, OAuthError | None]:
        """Consume a code and return what it grants.

        Returns (grant, error).
        """
        if not code:
            return None, OAuthError.INVALID_REQUEST

        auth_code = self.store.consume_auth_code(code, client_id)
        if auth_code is None:
            logger.debug("Authorization code unknown, expired or used (client %s)", client_id)
            return None, OAuthError.INVALID_GRANT

        if redirect_uri and not constant_time_equals(redirect_uri, auth_code.redirect_uri):
            logger.debug("Redirect URI mismatch on code exchange (client %s)", client_id)
            return None, OAuthError.INVALID_GRANT

        if auth_code.code_challenge:
            if not code_verifier:
                logger.debug("Missing PKCE verifier (client %s)", client_id)
                return None, OAuthError.INVALID_GRANT
            if not verify_pkce(
                code_verifier, auth_code.code_challenge, auth_code.code_challenge_method
            ):
                logger.debug("PKCE verification failed (client %s)", client_id)
                return None, OAuthError.INVALID_GRANT

        return (
            CodeGrant(client_id=client_id, user_id=auth_code.user_id, scope=auth_code.scope),
            None,
        )
