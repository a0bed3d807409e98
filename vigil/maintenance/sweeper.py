"""Maintenance sweeper — periodic cache expiry and retention pruning.

Each job runs on its own interval. A failed run is logged and simply tried
again on the next tick; it never touches a scan in progress.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..modules.base_module import BaseModule
from ..storage.content_cache import ContentCache
from .retention import RetentionManager


class MaintenanceSweeper(BaseModule):
    def __init__(
        self,
        content_cache: ContentCache,
        retention: RetentionManager,
        config: dict | None = None,
    ):
        super().__init__(name="maintenance_sweeper", config=config)
        cfg = config or {}
        self._cache_interval: int = cfg.get("cache_cleanup_interval", 6 * 3600)
        self._retention_interval: int = cfg.get("retention_interval", 6 * 3600)
        self._cache = content_cache
        self._retention = retention

        self.last_cache_cleanup: Optional[dict] = None
        self.last_retention: Optional[dict] = None
        self.failures = 0

    async def start(self) -> None:
        self.running = True
        self.health_status = "running"
        self.spawn(self._periodic("cache_cleanup", self._cache_interval, self.run_cache_cleanup), "cache")
        self.spawn(self._periodic("retention", self._retention_interval, self.run_retention), "retention")
        self.heartbeat()
        self.logger.info(
            "maintenance_sweeper_started",
            cache_interval=self._cache_interval,
            retention_interval=self._retention_interval,
        )

    async def stop(self) -> None:
        self.running = False
        await self.cancel_tasks()
        self.health_status = "stopped"
        self.logger.info("maintenance_sweeper_stopped")

    async def health_check(self) -> dict:
        self.heartbeat()
        return {
            "status": self.health_status,
            "details": {
                "last_cache_cleanup": self.last_cache_cleanup,
                "last_retention": self.last_retention,
                "failures": self.failures,
            },
        }

    async def run_cache_cleanup(self) -> dict:
        deleted = await self._cache.cleanup_expired()
        self.last_cache_cleanup = {"expired_entries_removed": deleted}
        return self.last_cache_cleanup

    async def run_retention(self) -> dict:
        self.last_retention = await self._retention.prune_tiered()
        return self.last_retention

    async def _periodic(self, job: str, interval: int, run: Callable[[], Awaitable[dict]]) -> None:
        while self.running:
            try:
                await asyncio.sleep(interval)
                if not self.running:
                    break
                await run()
                self.heartbeat()
            except asyncio.CancelledError:
                break
            except (SQLAlchemyError, OSError, ValueError) as e:
                self.failures += 1
                self.logger.error("maintenance_job_failed", job=job, error=str(e))
