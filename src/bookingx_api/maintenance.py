"""Background sweeps for expired credentials and stale rate-limit counters.

Expired codes and tokens are never valid even while their rows exist; the
sweeps only keep the tables small. They run on an APScheduler interval job
started from the app lifespan, or once from ``python -m bookingx_api sweep``.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from bookingx_api.errors import StorageError
from bookingx_api.services import Services

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "credential_sweep"


def sweep_expired_credentials(services: Services) -> dict[str, int]:
    """Delete codes, access tokens and refresh tokens past their expiry."""
    now = int(services.rate_limiter.now())
    counts = services.store.purge_expired_credentials(now)
    if any(counts.values()):
        logger.info("Purged expired credentials: %s", counts)
    return counts


def sweep_rate_limits(services: Services) -> int:
    """Delete counters from windows that can no longer be charged."""
    return services.rate_limiter.cleanup()


def run_sweeps(services: Services) -> dict[str, int]:
    """Background sweep job. Storage failures are logged; the job runs again next interval."""
    try:
        counts = sweep_expired_credentials(services)
        counts["rate_counters"] = sweep_rate_limits(services)
    except StorageError:
        logger.error("Credential sweep failed", exc_info=True)
        return {}
    return counts


def start_scheduler(services: Services) -> AsyncIOScheduler:
    """Start the background scheduler. Must be called with a running event loop."""
    interval = services.settings.sweep_interval_seconds
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_sweeps,
        trigger=IntervalTrigger(seconds=interval),
        args=[services],
        id=SWEEP_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Sweeper started, running every %d seconds", interval)
    return scheduler


def shutdown_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Graceful shutdown."""
    scheduler.shutdown(wait=False)
    logger.info("Sweeper shut down")
