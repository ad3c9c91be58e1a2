"""API server for ``python -m bookingx_api serve``.

Builds the FastAPI app: the versioned ``/api/v1/`` routers, CORS, the request
authentication middleware and the background sweeper. The login system is
outside this service; it plugs in as ``user_resolver``, a callable mapping a
request to the logged-in user id (or None).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bookingx_api.auth_pipeline import RequestAuthenticator, UserResolver, auth_middleware
from bookingx_api.config import Settings, get_settings
from bookingx_api.errors import OAuthError, StorageError
from bookingx_api.services import Services, build_services

logger = logging.getLogger(__name__)


async def _storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Credential store failure on %s", request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=OAuthError.SERVER_ERROR.status_code,
        content=OAuthError.SERVER_ERROR.to_dict(),
    )


def create_api_app(
    settings: Settings | None = None,
    services: Services | None = None,
    user_resolver: UserResolver | None = None,
) -> FastAPI:
    """Build the FastAPI application with the v1 access-control routers."""
    from bookingx_api.api.v1 import mount_v1_routers

    if services is not None:
        settings = services.settings
    settings = settings or get_settings()
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = None
        if settings.enable_sweeper:
            from bookingx_api.maintenance import start_scheduler

            scheduler = start_scheduler(services)
        yield
        if scheduler is not None:
            from bookingx_api.maintenance import shutdown_scheduler

            shutdown_scheduler(scheduler)

    app = FastAPI(
        title="BookingX API",
        description="Access control for the booking REST surface: OAuth2, API keys, rate limits.",
        version="1.0.0",
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services
    app.state.authenticator = RequestAuthenticator(
        api_keys=services.api_keys,
        oauth_server=services.oauth_server,
        rate_limiter=services.rate_limiter,
        user_resolver=user_resolver,
        settings=settings,
    )

    # --- Auth middleware -------------------------------------------------
    app.middleware("http")(auth_middleware)

    # --- CORS (outermost, so preflights and 401/429 answers carry it) ----
    if settings.cors_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type", settings.api_key_header],
            expose_headers=[
                "X-RateLimit-Limit",
                "X-RateLimit-Remaining",
                "X-RateLimit-Reset",
                "Retry-After",
            ],
        )

    app.add_exception_handler(StorageError, _storage_error_handler)

    # --- Mount all /api/v1/ routers -------------------------------------
    mount_v1_routers(app, settings)

    return app


def run_api_server(
    host: str = "127.0.0.1",
    port: int = 8000,
    dev: bool = False,
) -> None:
    """Start the API server."""
    import uvicorn

    settings = get_settings()
    logger.info("API docs: http://%s:%d/api/v1/docs", host, port)

    if dev:
        import pathlib

        src_dir = str(pathlib.Path(__file__).resolve().parent.parent)
        uvicorn.run(
            "bookingx_api.api.serve:create_api_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            reload_dirs=[src_dir],
            reload_includes=["*.py"],
            log_level="debug",
        )
    else:
        app = create_api_app(settings)
        uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())
