"""Tests for the periodic maintenance sweeper."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from vigil.maintenance.sweeper import MaintenanceSweeper


def _sweeper(cache_interval=3600, retention_interval=3600):
    cache = MagicMock()
    cache.cleanup_expired = AsyncMock(return_value=3)
    retention = MagicMock()
    retention.prune_tiered = AsyncMock(
        return_value={"tier3_diffs_removed": 2, "scans_deleted": 1}
    )
    sweeper = MaintenanceSweeper(cache, retention, config={
        "cache_cleanup_interval": cache_interval,
        "retention_interval": retention_interval,
    })
    return sweeper, cache, retention


class TestMaintenanceSweeper:
    @pytest.mark.asyncio
    async def test_run_jobs_directly(self):
        sweeper, _, retention = _sweeper()
        assert await sweeper.run_cache_cleanup() == {"expired_entries_removed": 3}
        assert await sweeper.run_retention() == {"tier3_diffs_removed": 2, "scans_deleted": 1}
        retention.prune_tiered.assert_awaited_once_with()

        health = await sweeper.health_check()
        assert health["details"]["last_cache_cleanup"] == {"expired_entries_removed": 3}
        assert health["details"]["failures"] == 0

    @pytest.mark.asyncio
    async def test_periodic_jobs_run_until_stopped(self):
        sweeper, cache, retention = _sweeper(cache_interval=0.01, retention_interval=0.01)
        await sweeper.start()
        await asyncio.sleep(0.1)
        await sweeper.stop()

        assert cache.cleanup_expired.await_count >= 1
        assert retention.prune_tiered.await_count >= 1
        assert sweeper.health_status == "stopped"
        assert sweeper._tasks == []

    @pytest.mark.asyncio
    async def test_failed_run_is_counted_and_retried(self):
        sweeper, cache, _ = _sweeper(cache_interval=0.01)
        calls = {"n": 0}

        async def _flaky():
            calls["n"] += 1
            if calls["n"] == 1:
                raise OperationalError("DELETE", {}, Exception("database is locked"))
            return 5

        cache.cleanup_expired.side_effect = _flaky
        await sweeper.start()
        await asyncio.sleep(0.1)
        await sweeper.stop()

        assert sweeper.failures == 1
        assert sweeper.last_cache_cleanup == {"expired_entries_removed": 5}
