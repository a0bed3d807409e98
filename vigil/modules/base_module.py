"""Lifecycle base for long-running Vigil services."""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Coroutine, Optional

from ..utils.logging import get_logger


class BaseModule(ABC):
    """Start/stop/health contract shared by the scan and maintenance modules.

    Background loops are started through ``spawn`` so ``cancel_tasks`` can
    tear them all down on stop.
    """

    def __init__(self, name: str, config: dict | None = None):
        self.name = name
        self.config = config or {}
        self.running = False
        self.health_status = "initialized"
        self.last_heartbeat: Optional[datetime] = None
        self.logger = get_logger(f"module.{name}")
        self._tasks: list[asyncio.Task] = []

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> dict:
        """Return {status: str, details: dict}."""
        ...

    def heartbeat(self) -> None:
        self.last_heartbeat = datetime.now(timezone.utc)

    def spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"{self.name}.{name}")
        self._tasks.append(task)
        return task

    async def cancel_tasks(self) -> None:
        for task in self._tasks:
            if not task.done():
                task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "running": self.running,
            "health_status": self.health_status,
            "last_heartbeat": self.last_heartbeat.isoformat() if self.last_heartbeat else None,
        }
