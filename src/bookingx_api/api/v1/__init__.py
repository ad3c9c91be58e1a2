# API v1 router aggregation.
# Created: 2026-02-20
#
# mount_v1_routers(app) registers the access-control routers at /api/v1/.

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import FastAPI

    from bookingx_api.config import Settings

logger = logging.getLogger(__name__)

# Imported lazily by mount_v1_routers(); the router modules import api.deps.
_V1_ROUTERS: list[tuple[str, str, str, str | None]] = [
    # (module_path, attr_name, tag, settings flag that must be on)
    ("bookingx_api.api.v1.identity", "router", "Identity", None),
    ("bookingx_api.api.v1.oauth2", "router", "OAuth2", "enable_oauth"),
    ("bookingx_api.api.v1.clients", "router", "OAuth2 Clients", "enable_oauth"),
    ("bookingx_api.api.v1.api_keys", "router", "API Keys", "enable_api_keys"),
]


def mount_v1_routers(app: FastAPI, settings: Settings) -> None:
    """Mount the v1 routers on *app* at ``/api/v1/<prefix>``.

    Routers whose feature flag is off in *settings* are skipped.
    """
    import importlib

    from fastapi import APIRouter

    for module_path, attr_name, tag, flag in _V1_ROUTERS:
        if flag is not None and not getattr(settings, flag):
            logger.debug("Skipping v1 router %s (%s disabled)", module_path, flag)
            continue
        mod = importlib.import_module(module_path)
        router: APIRouter = getattr(mod, attr_name)
        app.include_router(router, prefix="/api/v1")
        logger.debug("Mounted v1 router: %s (%s)", module_path, tag)
