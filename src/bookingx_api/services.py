# Service wiring — one place that builds the store and everything on top of it.
# Created: 2026-02-20
#
# The HTTP app keeps its Services on app.state; the CLI uses get_services().

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import Engine

from bookingx_api.api.api_keys import APIKeyManager
from bookingx_api.api.oauth2.clients import ClientRegistry
from bookingx_api.api.oauth2.codes import AuthorizationCodeIssuer
from bookingx_api.api.oauth2.server import AuthorizationServer
from bookingx_api.config import Settings, get_settings
from bookingx_api.db import create_db_engine, create_session_factory, create_tables
from bookingx_api.security.rate_limiter import FixedWindowRateLimiter
from bookingx_api.store.sql import SqlCredentialStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    engine: Engine
    store: SqlCredentialStore
    api_keys: APIKeyManager
    clients: ClientRegistry
    issuer: AuthorizationCodeIssuer
    oauth_server: AuthorizationServer
    rate_limiter: FixedWindowRateLimiter

    def dispose(self) -> None:
        self.engine.dispose()


def build_services(
    settings: Settings | None = None,
    engine: Engine | None = None,
    clock: Callable[[], float] = time.time,
    create_schema: bool = True,
) -> Services:
    """Build the credential store and the components that share it."""
    settings = settings or get_settings()
    engine = engine or create_db_engine(settings.database_url, echo=settings.database_echo)
    if create_schema:
        create_tables(engine)

    store = SqlCredentialStore(create_session_factory(engine), clock=clock)
    issuer = AuthorizationCodeIssuer(store, code_ttl=settings.auth_code_ttl, clock=clock)
    services = Services(
        settings=settings,
        engine=engine,
        store=store,
        api_keys=APIKeyManager(store, hash_rounds=settings.bcrypt_rounds, clock=clock),
        clients=ClientRegistry(store, hash_rounds=settings.bcrypt_rounds),
        issuer=issuer,
        oauth_server=AuthorizationServer(
            store,
            issuer,
            access_token_ttl=settings.access_token_ttl,
            refresh_token_ttl=settings.refresh_token_ttl,
            clock=clock,
            hash_rounds=settings.bcrypt_rounds,
        ),
        rate_limiter=FixedWindowRateLimiter(
            store,
            default_limit=settings.default_rate_limit,
            window=settings.rate_limit_window,
            clock=clock,
        ),
    )
    logger.debug("Services built on %s", engine.url.render_as_string(hide_password=True))
    return services


# Singleton
_services: Services | None = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def reset_services() -> None:
    """Dispose and forget the process-wide services (for testing)."""
    global _services
    if _services is not None:
        _services.dispose()
    _services = None
