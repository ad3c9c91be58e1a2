# Tests for the background credential sweeps.
# Created: 2026-02-20

import asyncio
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from bookingx_api.api.serve import create_api_app
from bookingx_api.errors import StorageError
from bookingx_api.maintenance import (
    SWEEP_JOB_ID,
    run_sweeps,
    shutdown_scheduler,
    start_scheduler,
    sweep_expired_credentials,
    sweep_rate_limits,
)
from bookingx_api.services import build_services
from conftest import WINDOW_START, make_settings


def _seed(store, now):
    store.create_access_token("expired", "c1", None, "", now - 1)
    store.create_access_token("live", "c1", None, "", now + 3600)
    store.create_refresh_token("expired-rt", "c1", "u1", "", now)
    store.increment_rate_counter("ip:a", "/e", WINDOW_START - 7200)
    store.increment_rate_counter("ip:a", "/e", WINDOW_START)


class TestSweeps:
    def test_expired_credentials(self, services, store, clock):
        _seed(store, int(clock()))
        counts = sweep_expired_credentials(services)
        assert counts == {"codes": 0, "access_tokens": 1, "refresh_tokens": 1}
        assert store.find_access_token("live") is not None

    def test_rate_limits(self, services, store, clock):
        _seed(store, int(clock()))
        assert sweep_rate_limits(services) == 1
        assert store.count_rate_counters() == 1

    def test_run_sweeps(self, services, store, clock):
        _seed(store, int(clock()))
        assert run_sweeps(services) == {
            "codes": 0,
            "access_tokens": 1,
            "refresh_tokens": 1,
            "rate_counters": 1,
        }
        # Nothing left to do
        assert run_sweeps(services)["access_tokens"] == 0

    def test_storage_failure_is_logged_not_raised(self, services, store, caplog):
        with patch.object(store, "purge_expired_credentials", side_effect=StorageError("locked")):
            assert run_sweeps(services) == {}
        assert "Credential sweep failed" in caplog.text


class TestScheduler:
    def test_start_and_shutdown(self, services):
        async def _run():
            scheduler = start_scheduler(services)
            try:
                job = scheduler.get_job(SWEEP_JOB_ID)
                assert job is not None
                assert job.trigger.interval.total_seconds() == 300
                assert job.max_instances == 1
                assert scheduler.running
            finally:
                shutdown_scheduler(scheduler)
            assert not scheduler.running

        asyncio.run(_run())

    def test_custom_interval(self, clock):
        services = build_services(make_settings(sweep_interval_seconds=30), clock=clock)

        async def _run():
            scheduler = start_scheduler(services)
            interval = scheduler.get_job(SWEEP_JOB_ID).trigger.interval.total_seconds()
            shutdown_scheduler(scheduler)
            return interval

        try:
            assert asyncio.run(_run()) == 30
        finally:
            services.dispose()

    def test_lifespan_runs_sweeper(self, clock):
        services = build_services(make_settings(enable_sweeper=True), clock=clock)
        scheduler = MagicMock()
        try:
            with (
                patch("bookingx_api.maintenance.start_scheduler", return_value=scheduler) as start,
                patch("bookingx_api.maintenance.shutdown_scheduler") as shutdown,
            ):
                with TestClient(create_api_app(services=services)):
                    start.assert_called_once_with(services)
                    shutdown.assert_not_called()
                shutdown.assert_called_once_with(scheduler)
        finally:
            services.dispose()

    def test_sweeper_disabled(self, services):
        with patch("bookingx_api.maintenance.start_scheduler") as start:
            with TestClient(create_api_app(services=services)):
                pass
        start.assert_not_called()
