"""File Integrity Module — the scan subsystem's entry point.

Owns the scan lock, the checksum thread pool and the background queue for
enqueued scans. The lock serializes this instance; the store itself refuses
a second running scan from anywhere else. Each run is delegated to a
``ScanOrchestrator`` built from the current settings.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import ScanInProgressError, ScanStateError
from ..models.base import utcnow
from ..models.scan_result import (
    ACTIVE_STATUSES,
    SCAN_TYPE_MANUAL,
    STATUS_CANCELLED,
    STATUS_QUEUED,
)
from ..scanner.orchestrator import ProgressCallback, ScanOrchestrator
from ..security.file_access import FileAccessChecker, FileAccessPolicy
from ..security.priority import PriorityClassifier, VelocityRecorder
from ..settings_provider import SettingsProvider
from ..storage.content_cache import ContentCache
from ..storage.file_records import FileRecordRepository, record_to_dict
from ..storage.scan_results import ScanResultRepository, scan_to_dict
from ..utils.encryption import ContentCipher
from .base_module import BaseModule


class FileIntegrity(BaseModule):
    """Runs, queues, cancels and reports on integrity scans."""

    def __init__(self, config: dict | None = None):
        super().__init__(name="file_integrity", config=config)

        cfg = config or {}
        self._scan_root: str = cfg.get("scan_root", ".")
        self._batch_size: int = cfg.get("scan_batch_size", 256)
        self._workers: int = cfg.get("checksum_workers", 4)
        self._secret_key: str = cfg.get("secret_key", "")

        # Collaborators, attached by the application wiring
        self._settings: Optional[SettingsProvider] = None
        self._access_checker: FileAccessChecker = FileAccessPolicy()
        self._priority_classifier: Optional[PriorityClassifier] = None
        self._velocity_recorder: Optional[VelocityRecorder] = None
        self.scan_results: Optional[ScanResultRepository] = None
        self.file_records: Optional[FileRecordRepository] = None
        self.content_cache: Optional[ContentCache] = None

        # State
        self._scan_lock = asyncio.Lock()
        self._queue: asyncio.Queue[int] = asyncio.Queue()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._cancel_events: dict[int, asyncio.Event] = {}
        self._current_scan_id: Optional[int] = None
        self._last_scan: Optional[dict] = None

    # --- Wiring ---

    def set_db_session_factory(self, factory: async_sessionmaker[AsyncSession]) -> None:
        """Attach the store; builds the repositories and the content cache."""
        self.scan_results = ScanResultRepository(factory)
        self.file_records = FileRecordRepository(factory)
        self.content_cache = ContentCache(factory, ContentCipher(self._secret_key))
        self.logger.info("db_session_factory_attached")

    def set_settings_provider(self, settings: SettingsProvider) -> None:
        self._settings = settings

    def set_access_checker(self, checker: FileAccessChecker) -> None:
        self._access_checker = checker

    def set_priority_classifier(self, classifier: Optional[PriorityClassifier]) -> None:
        self._priority_classifier = classifier

    def set_velocity_recorder(self, recorder: Optional[VelocityRecorder]) -> None:
        self._velocity_recorder = recorder

    # --- Lifecycle ---

    async def start(self) -> None:
        self._require_wiring()
        self.running = True
        self.health_status = "running"
        self.logger.info("file_integrity_starting", scan_root=self._scan_root)

        interrupted = await self.scan_results.fail_interrupted(
            "Scan interrupted by a service restart"
        )
        if interrupted:
            self.logger.warning("interrupted_scans_marked_failed", count=interrupted)

        self.spawn(self._worker_loop(), "worker")
        self.heartbeat()
        self.logger.info("file_integrity_started")

    async def stop(self) -> None:
        self.running = False
        for event in self._cancel_events.values():
            event.set()
        await self.cancel_tasks()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self.health_status = "stopped"
        self.logger.info("file_integrity_stopped")

    async def health_check(self) -> dict:
        self.heartbeat()
        return {
            "status": self.health_status,
            "details": {
                "scan_root": self._scan_root,
                "scan_in_progress": self._scan_lock.locked(),
                "current_scan_id": self._current_scan_id,
                "queued_scans": self._queue.qsize(),
                "last_scan": self._last_scan,
            },
        }

    # --- Scan execution ---

    async def run_scan(
        self,
        scan_type: str = SCAN_TYPE_MANUAL,
        progress: Optional[ProgressCallback] = None,
        wait: bool = True,
    ) -> int:
        """Run a scan to completion and return its id.

        With ``wait=False`` a scan already in progress raises
        ``ScanInProgressError`` instead of waiting for the lock. A scan
        running from another process on the same store always raises it;
        the lock only serializes callers of this instance.
        """
        self._require_wiring()
        if not wait and (self._scan_lock.locked() or await self.scan_results.has_active_scan()):
            raise ScanInProgressError("A scan is already running")

        async with self._scan_lock:
            scan = await self.scan_results.create(scan_type, STATUS_QUEUED)
            await self._execute(scan.id, progress)
        return scan.id

    async def enqueue_scan(self, scan_type: str = SCAN_TYPE_MANUAL) -> int:
        """Create a ``queued`` scan for the background worker and return its id."""
        self._require_wiring()
        if not self.running:
            raise ScanStateError("The scan worker is not running")
        scan = await self.scan_results.create(scan_type, STATUS_QUEUED)
        await self._queue.put(scan.id)
        self.logger.info("scan_enqueued", scan_id=scan.id, scan_type=scan_type)
        return scan.id

    async def _worker_loop(self) -> None:
        """Drain queued scans one at a time."""
        while self.running:
            try:
                scan_id = await self._queue.get()
            except asyncio.CancelledError:
                break
            try:
                async with self._scan_lock:
                    await self._execute(scan_id)
            except asyncio.CancelledError:
                break
            except ScanInProgressError:
                self.logger.warning("queued_scan_refused_busy", scan_id=scan_id)
            except Exception as e:
                self.logger.error("file_integrity_worker_error", scan_id=scan_id, error=str(e))
            finally:
                self._queue.task_done()

    async def _execute(self, scan_id: int, progress: Optional[ProgressCallback] = None) -> dict:
        cancel_event = asyncio.Event()
        self._cancel_events[scan_id] = cancel_event
        self._current_scan_id = scan_id
        try:
            result = await self._build_orchestrator().execute(
                scan_id, self._scan_root, progress=progress, cancel_event=cancel_event
            )
        finally:
            self._cancel_events.pop(scan_id, None)
            self._current_scan_id = None
        self._last_scan = result
        self.heartbeat()
        return result

    def _build_orchestrator(self) -> ScanOrchestrator:
        return ScanOrchestrator(
            settings=self._settings,
            scan_results=self.scan_results,
            file_records=self.file_records,
            content_cache=self.content_cache,
            access_checker=self._access_checker,
            priority_classifier=self._priority_classifier,
            velocity_recorder=self._velocity_recorder,
            batch_size=self._batch_size,
            executor=self._get_executor(),
        )

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._workers, thread_name_prefix="vigil-checksum"
            )
        return self._executor

    def _require_wiring(self) -> None:
        if self.scan_results is None or self._settings is None:
            raise RuntimeError("FileIntegrity needs a session factory and settings provider")

    # --- Scan lifecycle operations ---

    async def cancel_scan(self, scan_id: int) -> None:
        """Cancel a queued or running scan; records written so far are kept."""
        scan = await self.scan_results.require(scan_id)
        cancelled = await self.scan_results.transition(
            scan_id, ACTIVE_STATUSES, STATUS_CANCELLED,
            notes="Scan cancelled by request", completed_at=utcnow(),
        )
        if not cancelled:
            raise ScanStateError(f"Scan {scan_id} is {scan.status} and cannot be cancelled")
        event = self._cancel_events.get(scan_id)
        if event is not None:
            event.set()
        self.logger.warning("scan_cancel_requested", scan_id=scan_id)

    async def mark_baseline(self, scan_id: int) -> None:
        await self.scan_results.set_baseline(scan_id)

    async def delete_scan(self, scan_id: int) -> None:
        await self.scan_results.delete(scan_id)

    # --- Public API methods ---

    async def get_scan_status(self, scan_id: int) -> str:
        scan = await self.scan_results.require(scan_id)
        return scan.status

    async def get_scan(self, scan_id: int) -> dict:
        scan = await self.scan_results.require(scan_id)
        return scan_to_dict(scan, await self.scan_results.get_baseline_id())

    async def get_scan_summary(self, scan_id: int) -> dict:
        """Counts for a notification dispatcher; no file contents."""
        scan = await self.scan_results.require(scan_id)
        return {
            "scan_id": scan.id,
            "status": scan.status,
            "scan_type": scan.scan_type,
            "scan_date": scan.scan_date.isoformat() if scan.scan_date else None,
            "total": scan.total_files,
            "changed": scan.changed_files,
            "new": scan.new_files,
            "deleted": scan.deleted_files,
            "unchanged": scan.unchanged_files,
            "notes": scan.notes,
        }

    async def list_scans(self, page: int = 1, per_page: int = 20) -> dict:
        result = await self.scan_results.get_paginated(page, per_page)
        baseline_id = await self.scan_results.get_baseline_id()
        return {
            "results": [scan_to_dict(s, baseline_id) for s in result["results"]],
            "total_count": result["total_count"],
            "page": max(page, 1),
            "per_page": per_page,
        }

    async def get_scan_files(
        self, scan_id: int, page: int = 1, per_page: int = 50, status: str = ""
    ) -> dict:
        await self.scan_results.require(scan_id)
        result = await self.file_records.get_paginated(scan_id, page, per_page, status)
        return {
            "results": [record_to_dict(r) for r in result["results"]],
            "total_count": result["total_count"],
            "page": max(page, 1),
            "per_page": per_page,
        }

    async def get_dashboard_stats(self) -> dict:
        latest = await self.scan_results.list_recent(limit=1)
        baseline_id = await self.scan_results.get_baseline_id()
        return {
            "latest_scan": scan_to_dict(latest[0], baseline_id) if latest else None,
            "baseline_scan_id": baseline_id,
            "statistics": await self.scan_results.statistics(),
        }

    def get_last_scan(self) -> Optional[dict]:
        return self._last_scan
