"""Request authentication pipeline for the booking REST surface.

Composes the API key authenticator, the OAuth2 token manager and the rate
limiter into one decision per request:

- ``RequestAuthenticator.resolve_identity()`` — who is calling
  (session user, API key, OAuth2 bearer token or anonymous)
- ``RequestAuthenticator.rate_limit_identifier()`` — which counter to charge
- ``auth_middleware()`` — HTTP middleware (registered by api.serve)

The resolved ``Identity`` and ``RateLimitInfo`` live on ``request.state`` only;
nothing about a request is kept in module globals.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.routing import Match

from bookingx_api.api.api_keys import WILDCARD, APIKeyManager
from bookingx_api.api.api_keys import has_permission as _permission_granted
from bookingx_api.api.oauth2.server import ACCESS_TOKEN_PREFIX, AuthorizationServer
from bookingx_api.config import Settings
from bookingx_api.errors import OAuthError, StorageError
from bookingx_api.security.hashing import digest_token
from bookingx_api.security.rate_limiter import FixedWindowRateLimiter, RateLimitInfo
from bookingx_api.store.models import APIKey

logger = logging.getLogger(__name__)

# Access token values as issued by AuthorizationServer
_BEARER_FORMAT = re.compile(rf"^{ACCESS_TOKEN_PREFIX}[0-9a-f]{{64}}$")

UserResolver = Callable[[Request], str | None]


class IdentityKind(str, Enum):
    SESSION = "session"
    API_KEY = "api_key"
    OAUTH = "oauth"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class Identity:
    """The caller behind one request."""

    kind: IdentityKind
    user_id: str | None = None
    key_id: str | None = None
    client_id: str | None = None
    permissions: frozenset[str] = field(default_factory=frozenset)
    # A bearer token was presented and did not validate
    bearer_rejected: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.kind is not IdentityKind.ANONYMOUS

    @classmethod
    def anonymous(cls, bearer_rejected: bool = False) -> Identity:
        return cls(kind=IdentityKind.ANONYMOUS, bearer_rejected=bearer_rejected)


def has_permission(identity: Identity, permission: str) -> bool:
    """Session users hold everything; keys and tokens hold what they were granted."""
    if not identity.is_authenticated:
        return False
    return _permission_granted(identity.permissions, permission)


def _authorization(request: Request, scheme: str) -> str | None:
    """Credential from ``Authorization: <scheme> <value>`` (scheme case-insensitive)."""
    header = request.headers.get("Authorization", "")
    parts = header.split(None, 1)
    if len(parts) != 2 or parts[0].lower() != scheme.lower():
        return None
    return parts[1].strip() or None


class RequestAuthenticator:
    """Resolves identities and charges rate-limit counters."""

    def __init__(
        self,
        api_keys: APIKeyManager | None,
        oauth_server: AuthorizationServer | None,
        rate_limiter: FixedWindowRateLimiter,
        user_resolver: UserResolver | None = None,
        settings: Settings | None = None,
    ):
        self.api_keys = api_keys
        self.oauth_server = oauth_server
        self.rate_limiter = rate_limiter
        self.user_resolver = user_resolver
        self.settings = settings or Settings()

    # ------------------------------------------------------------------
    # Credential extraction
    # ------------------------------------------------------------------

    def presented_api_key(self, request: Request) -> str | None:
        """Header first, then query parameter, then ``Authorization: ApiKey``."""
        return (
            request.headers.get(self.settings.api_key_header)
            or request.query_params.get(self.settings.api_key_query_param)
            or _authorization(request, "ApiKey")
        )

    @staticmethod
    def presented_bearer(request: Request) -> str | None:
        return _authorization(request, "Bearer")

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def _authenticated_key(self, request: Request) -> APIKey | None:
        if self.api_keys is None or not self.settings.enable_api_keys:
            return None
        presented = self.presented_api_key(request)
        if not presented:
            return None
        origin = request.client.host if request.client else None
        return self.api_keys.authenticate(presented, origin=origin)

    def resolve_identity(self, request: Request) -> Identity:
        """Session user, then API key, then bearer token, else anonymous.

        A valid key sent alongside a session keeps its ``key_id`` on the
        session identity, so the key's counter and custom limit still apply.
        """
        key = self._authenticated_key(request)

        if self.user_resolver is not None:
            user_id = self.user_resolver(request)
            if user_id:
                return Identity(
                    kind=IdentityKind.SESSION,
                    user_id=str(user_id),
                    key_id=key.key_id if key is not None else None,
                    permissions=frozenset({WILDCARD}),
                )

        if key is not None:
            return Identity(
                kind=IdentityKind.API_KEY,
                user_id=key.user_id,
                key_id=key.key_id,
                permissions=frozenset(key.permissions or ()),
            )
        # Invalid keys fall through to the next mechanism

        bearer = self.presented_bearer(request)
        if bearer:
            info = None
            if self.oauth_server is not None and self.settings.enable_oauth:
                info = self.oauth_server.validate_access_token(bearer)
            if info is None:
                logger.debug("Bearer token rejected for %s", request.url.path)
                return Identity.anonymous(bearer_rejected=True)
            return Identity(
                kind=IdentityKind.OAUTH,
                user_id=info.user_id,
                client_id=info.client_id,
                permissions=frozenset(info.scopes),
            )

        return Identity.anonymous()

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    def rate_limit_identifier(self, identity: Identity, request: Request) -> str:
        """``key:`` > ``token:`` > ``user:`` > ``ip:``."""
        if identity.key_id:
            return f"key:{identity.key_id}"
        bearer = self.presented_bearer(request)
        if bearer and _BEARER_FORMAT.match(bearer):
            return f"token:{digest_token(bearer)[:32]}"
        if identity.user_id:
            return f"user:{identity.user_id}"
        return f"ip:{request.client.host if request.client else 'unknown'}"

    @staticmethod
    def endpoint_for(request: Request) -> str:
        """Route template of the request (``/api/v1/auth/api-keys/{key_id}``), else its path."""
        for route in request.app.router.routes:
            match, _ = route.matches(request.scope)
            if match is Match.FULL:
                return getattr(route, "path", request.url.path)
        return request.url.path[:255]

    def check_rate_limit(
        self, identity: Identity, request: Request, charge: bool = True
    ) -> RateLimitInfo:
        limit = self.rate_limiter.resolve_limit(identity.key_id)
        count = self.rate_limiter.check if charge else self.rate_limiter.peek
        return count(
            self.rate_limit_identifier(identity, request),
            self.endpoint_for(request),
            limit=limit,
        )

    def admit(self, request: Request) -> tuple[Identity, RateLimitInfo]:
        """Resolve the caller and charge one request.

        A rejected bearer token is not charged; its RateLimitInfo only
        reports the counter it would have used.
        """
        identity = self.resolve_identity(request)
        return identity, self.check_rate_limit(
            identity, request, charge=not identity.bearer_rejected
        )


# ---------------------------------------------------------------------------
# HTTP middleware (registered by api.serve via app.middleware)
# ---------------------------------------------------------------------------


def _error_response(
    error: OAuthError, headers: dict[str, str] | None = None, **extra
) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content={**error.to_dict(), **extra},
        headers=headers,
    )


async def auth_middleware(request: Request, call_next):
    authenticator: RequestAuthenticator = request.app.state.authenticator

    if not request.url.path.startswith(authenticator.settings.protected_path_prefix):
        return await call_next(request)

    try:
        # Store calls and bcrypt are blocking
        identity, rl_info = await asyncio.to_thread(authenticator.admit, request)
    except StorageError:
        logger.error("Request authentication failed for %s", request.url.path, exc_info=True)
        return _error_response(OAuthError.SERVER_ERROR)

    now = authenticator.rate_limiter.now()
    if identity.bearer_rejected:
        headers = {
            "X-RateLimit-Limit": str(rl_info.limit),
            "X-RateLimit-Remaining": str(rl_info.remaining),
            "X-RateLimit-Reset": str(rl_info.reset_at),
            "WWW-Authenticate": 'Bearer error="invalid_token"',
        }
        return _error_response(OAuthError.INVALID_TOKEN, headers=headers)

    if not rl_info.allowed:
        return _error_response(
            OAuthError.RATE_LIMIT_EXCEEDED,
            headers=rl_info.headers(now),
            retry_after=rl_info.retry_after(now),
        )

    request.state.identity = identity
    request.state.rate_limit = rl_info

    response = await call_next(request)

    # Attach rate limit headers to every response
    for k, v in rl_info.headers(now).items():
        response.headers[k] = v
    return response
