"""Scan orchestrator — drives one scan from enumeration to persisted records.

Pipeline per batch: enumerate + filter (thread pool) -> checksum (thread
pool) -> classify against the previous snapshot -> diff/cache changed files
-> write the batch. The snapshot is consumed as files are seen; whatever is
left at the end is checked against the disk for deletions.
"""

import asyncio
import hashlib
import json
import os
import time
from concurrent.futures import Executor
from datetime import datetime, timedelta, timezone
from itertools import islice
from typing import Callable, Iterator, Optional

import psutil
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ChecksumSkipped, ScanError, ScanInProgressError, ScanPersistenceError
from ..models.base import utcnow
from ..models.file_record import FILE_CHANGED, FILE_DELETED, FILE_NEW, FILE_UNCHANGED
from ..models.scan_result import (
    ACTIVE_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_RUNNING,
)
from ..security.file_access import AccessDecision, FileAccessChecker
from ..security.priority import PriorityClassifier, VelocityRecorder
from ..settings_provider import SettingsProvider
from ..storage.content_cache import ContentCache
from ..storage.file_records import FileRecordRepository, SnapshotEntry
from ..storage.scan_results import ScanResultRepository
from ..utils.diff import unified_diff
from ..utils.logging import get_logger
from .checksum import ChecksumEngine
from .filters import FileFilter
from .text_types import TextClassifier
from .walker import Candidate, iter_files

logger = get_logger("scanner.orchestrator")

PROGRESS_EVERY = 100

ProgressCallback = Callable[[int, str], None]


def redaction_notice(reason: str) -> str:
    return f"[REDACTED] Content of this file is not stored or displayed: {reason}"


def summary_diff(previous_checksum: str, checksum: str, file_size: int, content: bytes) -> str:
    """Stand-in for a line diff when the previous version is not cached."""
    return json.dumps({
        "type": "summary",
        "timestamp": utcnow().isoformat(),
        "checksum_changed": {"from": previous_checksum, "to": checksum},
        "file_size": file_size,
        "lines_count": content.count(b"\n") + 1,
        "message": "Previous version not available. Full diff will be available on next change.",
    })


def _fingerprint(engine: ChecksumEngine, candidate: Candidate) -> tuple[str, int, datetime]:
    checksum = engine.checksum(candidate.abs_path)
    try:
        st = os.stat(candidate.abs_path)
    except OSError as e:
        raise ChecksumSkipped(f"stat failed: {e.strerror}", candidate.abs_path)
    mtime = datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).replace(tzinfo=None)
    return checksum, st.st_size, mtime


def _read_bytes(path: str, limit: int) -> Optional[bytes]:
    try:
        with open(path, "rb") as f:
            data = f.read(limit + 1)
    except OSError:
        return None
    return data if len(data) <= limit else None


def _take_candidates(files: Iterator[Candidate], file_filter: FileFilter, size: int) -> list[Candidate]:
    """Pull up to ``size`` candidates that pass the filter (runs in a worker thread)."""
    batch: list[Candidate] = []
    for candidate in files:
        reason = file_filter.skip_reason(candidate.abs_path, candidate.rel_path)
        if reason is None:
            batch.append(candidate)
            if len(batch) >= size:
                break
    return batch


class _ScanContext:
    """Per-run state: resolved configuration, snapshot, counters."""

    def __init__(self, scan_id: int, root: str, settings: SettingsProvider):
        self.scan_id = scan_id
        self.root = os.path.abspath(root)
        self.text = TextClassifier(settings.get_text_extensions())
        self.filter = FileFilter(
            settings.get_scan_file_types(),
            settings.get_exclude_patterns(),
            self.text,
        )
        self.engine = ChecksumEngine(settings.get_max_file_size())
        self.diff_limit = settings.get_diff_max_file_size()
        self.context_lines = settings.get_diff_context_lines()
        self.cache_ttl = timedelta(days=settings.get_retention_period())
        self.snapshot: dict[str, SnapshotEntry] = {}
        self.counts = {
            FILE_NEW: 0, FILE_CHANGED: 0, FILE_DELETED: 0, FILE_UNCHANGED: 0,
        }
        self.total_size = 0
        self.processed = 0
        self.peak_rss = 0

    def diffable(self, rel_path: str, size: int) -> bool:
        return self.text.is_text(rel_path) and size <= self.diff_limit

    def sample_memory(self) -> None:
        rss = psutil.Process().memory_info().rss
        if rss > self.peak_rss:
            self.peak_rss = rss

    def totals(self) -> dict:
        return {
            "total_files": sum(self.counts.values()),
            "changed_files": self.counts[FILE_CHANGED],
            "new_files": self.counts[FILE_NEW],
            "deleted_files": self.counts[FILE_DELETED],
            "unchanged_files": self.counts[FILE_UNCHANGED],
            "total_size": self.total_size,
        }


class ScanOrchestrator:
    """Runs a single scan against a target tree and persists its FileRecords."""

    def __init__(
        self,
        settings: SettingsProvider,
        scan_results: ScanResultRepository,
        file_records: FileRecordRepository,
        content_cache: ContentCache,
        access_checker: FileAccessChecker,
        priority_classifier: Optional[PriorityClassifier] = None,
        velocity_recorder: Optional[VelocityRecorder] = None,
        batch_size: int = 256,
        executor: Optional[Executor] = None,
    ):
        self._settings = settings
        self._scan_results = scan_results
        self._file_records = file_records
        self._cache = content_cache
        self._access = access_checker
        self._priority = priority_classifier
        self._velocity = velocity_recorder
        self._batch_size = batch_size
        self._executor = executor

    async def execute(
        self,
        scan_id: int,
        root: str,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> dict:
        """Run scan ``scan_id`` (queued or running) to a terminal status.

        Returns a summary dict. Scan-level failures are recorded on the
        ScanResult as ``failed`` with a note rather than raised. The one
        exception is a start refused because another scan already holds
        the store: the scan is marked failed and ``ScanInProgressError``
        is raised.
        """
        started = time.monotonic()
        if not await self._scan_results.claim_running(scan_id):
            status = await self._scan_results.get_status(scan_id)
            if status in ACTIVE_STATUSES:
                await self._scan_results.transition(
                    scan_id, ACTIVE_STATUSES, STATUS_FAILED,
                    notes="Another scan was already running", completed_at=utcnow(),
                )
                logger.warning("scan_refused_busy", scan_id=scan_id)
                raise ScanInProgressError("Another scan is already running")
            logger.info("scan_not_started", scan_id=scan_id, status=status)
            return {"scan_id": scan_id, "status": status}

        ctx = _ScanContext(scan_id, root, self._settings)
        ctx.sample_memory()
        logger.info("scan_started", scan_id=scan_id, root=ctx.root)

        try:
            ctx.snapshot = await self._load_comparison_snapshot(ctx)
            cancelled = await self._scan_tree(ctx, progress, cancel_event)
            if not cancelled:
                await self._record_deletions(ctx)
            if progress:
                progress(ctx.processed, "Scan complete")
        except ScanError as e:
            return await self._fail(ctx, started, str(e))
        except SQLAlchemyError as e:
            logger.error("scan_persistence_error", scan_id=scan_id, error=str(e))
            return await self._fail(ctx, started, "Database error while recording scan results")
        except Exception as e:
            logger.error("scan_unexpected_error", scan_id=scan_id, error=str(e), exc_info=True)
            return await self._fail(ctx, started, f"Scan aborted: {type(e).__name__}")

        return await self._finish(ctx, started, cancelled)

    async def _load_comparison_snapshot(self, ctx: _ScanContext) -> dict[str, SnapshotEntry]:
        """Previous records that still fall under the current filter rules.

        Records already reported as deleted are dropped, so a deletion is
        reported once and a returning file shows up as new.
        """
        previous = await self._scan_results.latest_completed()
        previous_id = previous.id if previous else await self._scan_results.get_baseline_id()
        if previous_id is None:
            return {}
        snapshot = await self._file_records.load_snapshot(previous_id)
        comparable = {
            path: entry for path, entry in snapshot.items()
            if entry.status != FILE_DELETED and ctx.filter.matches_path(path)
        }
        logger.info(
            "comparison_snapshot_loaded",
            scan_id=ctx.scan_id,
            previous_scan_id=previous_id,
            records=len(snapshot),
            comparable=len(comparable),
        )
        return comparable

    async def _scan_tree(
        self,
        ctx: _ScanContext,
        progress: Optional[ProgressCallback],
        cancel_event: Optional[asyncio.Event],
    ) -> bool:
        """Process the tree batch by batch. Returns True if cancelled."""
        loop = asyncio.get_running_loop()
        files = iter_files(ctx.root, ctx.filter)

        while True:
            batch = await loop.run_in_executor(
                self._executor, _take_candidates, files, ctx.filter, self._batch_size
            )
            if not batch:
                return False

            fingerprints = await asyncio.gather(*(
                loop.run_in_executor(self._executor, _fingerprint, ctx.engine, candidate)
                for candidate in batch
            ), return_exceptions=True)

            records = []
            for candidate, result in zip(batch, fingerprints):
                if cancel_event is not None and cancel_event.is_set():
                    break
                if isinstance(result, ChecksumSkipped):
                    logger.debug("file_skipped", path=candidate.rel_path, reason=result.reason)
                    continue
                if isinstance(result, BaseException):
                    raise result
                records.append(await self._classify(ctx, candidate, *result))
                ctx.processed += 1
                if progress and ctx.processed % PROGRESS_EVERY == 0:
                    progress(ctx.processed, candidate.rel_path)

            await self._write(ctx, records)
            ctx.sample_memory()
            if await self._cancel_requested(ctx.scan_id, cancel_event):
                return True

    async def _classify(
        self, ctx: _ScanContext, candidate: Candidate, checksum: str, size: int, mtime: datetime
    ) -> dict:
        rel_path = candidate.rel_path
        decision: AccessDecision = self._access.is_file_accessible(rel_path)
        record = {
            "file_path": rel_path,
            "file_size": size,
            "checksum": checksum,
            "status": FILE_UNCHANGED,
            "previous_checksum": None,
            "is_sensitive": not decision.allowed,
            "diff_content": None,
            "last_modified": mtime,
            "priority_level": self._priority.classify(rel_path) if self._priority else None,
        }
        previous = ctx.snapshot.pop(rel_path, None)

        if previous is None:
            record["status"] = FILE_NEW
            if decision.allowed and ctx.diffable(rel_path, size):
                content = await self._read(candidate.abs_path, ctx.diff_limit)
                if content is not None:
                    await self._cache_current(ctx, rel_path, checksum, content)
        elif previous.checksum != checksum:
            record["status"] = FILE_CHANGED
            record["previous_checksum"] = previous.checksum
            if not decision.allowed:
                record["diff_content"] = redaction_notice(decision.reason)
            elif ctx.diffable(rel_path, size):
                record["diff_content"] = await self._diff_changed(
                    ctx, candidate, previous.checksum, checksum, size
                )

        return record

    async def _diff_changed(
        self, ctx: _ScanContext, candidate: Candidate, previous_checksum: str, checksum: str, size: int
    ) -> Optional[str]:
        current = await self._read(candidate.abs_path, ctx.diff_limit)
        if current is None:
            logger.debug("diff_source_unreadable", path=candidate.rel_path)
            return None

        previous = await self._cache.get(candidate.rel_path, previous_checksum)
        await self._cache_current(ctx, candidate.rel_path, checksum, current)
        if previous is None:
            return summary_diff(previous_checksum, checksum, size, current)
        return unified_diff(
            previous.decode("utf-8", errors="replace"),
            current.decode("utf-8", errors="replace"),
            candidate.rel_path,
            ctx.context_lines,
        )

    async def _cache_current(self, ctx: _ScanContext, rel_path: str, checksum: str, content: bytes) -> None:
        # The file may have been rewritten since it was checksummed
        if hashlib.sha256(content).hexdigest() != checksum:
            logger.debug("cache_skipped_content_moved", path=rel_path)
            return
        await self._cache.store(rel_path, checksum, content, ctx.cache_ttl)

    async def _read(self, path: str, limit: int) -> Optional[bytes]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, _read_bytes, path, limit)

    async def _record_deletions(self, ctx: _ScanContext) -> None:
        """Previous files not seen this run and gone from disk become ``deleted``.

        A file that still exists but was skipped (locked, oversized, binary)
        is not a deletion.
        """
        leftovers = iter(sorted(ctx.snapshot.items()))
        while True:
            chunk = list(islice(leftovers, self._batch_size))
            if not chunk:
                break
            records = []
            for rel_path, previous in chunk:
                if os.path.lexists(os.path.join(ctx.root, *rel_path.split("/"))):
                    continue
                decision = self._access.is_file_accessible(rel_path)
                records.append({
                    "file_path": rel_path,
                    "file_size": previous.file_size,
                    "checksum": "",
                    "status": FILE_DELETED,
                    "previous_checksum": previous.checksum,
                    "is_sensitive": not decision.allowed,
                    "diff_content": None,
                    "last_modified": previous.last_modified,
                    "priority_level": self._priority.classify(rel_path) if self._priority else None,
                })
            await self._write(ctx, records)

    async def _write(self, ctx: _ScanContext, records: list[dict]) -> None:
        if not records:
            return
        try:
            await self._file_records.add_batch(ctx.scan_id, records)
        except SQLAlchemyError as e:
            raise ScanPersistenceError(f"Failed to write file records: {e}") from e

        for record in records:
            ctx.counts[record["status"]] += 1
            ctx.total_size += record["file_size"] if record["status"] != FILE_DELETED else 0
            if self._velocity is not None and record["status"] != FILE_UNCHANGED:
                self._velocity.record_change(record["file_path"], ctx.scan_id)

    async def _cancel_requested(self, scan_id: int, cancel_event: Optional[asyncio.Event]) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            return True
        return await self._scan_results.get_status(scan_id) == STATUS_CANCELLED

    async def _finish(self, ctx: _ScanContext, started: float, cancelled: bool) -> dict:
        duration = round(time.monotonic() - started, 3)
        totals = ctx.totals()
        fields = dict(totals, scan_duration=duration, memory_usage=ctx.peak_rss, completed_at=utcnow())

        if cancelled:
            await self._scan_results.transition(
                ctx.scan_id, ACTIVE_STATUSES + (STATUS_CANCELLED,), STATUS_CANCELLED,
                notes=f"Scan cancelled after {ctx.processed} files", **fields,
            )
            status = STATUS_CANCELLED
            logger.warning("scan_cancelled", scan_id=ctx.scan_id, processed=ctx.processed)
        elif await self._scan_results.transition(
            ctx.scan_id, (STATUS_RUNNING,), STATUS_COMPLETED,
            notes=f"Scan completed successfully at {utcnow().isoformat()}", **fields,
        ):
            status = STATUS_COMPLETED
            try:
                await self._scan_results.set_baseline_if_absent(ctx.scan_id)
            except SQLAlchemyError as e:
                # The scan is already committed as completed
                logger.error("baseline_not_recorded", scan_id=ctx.scan_id, error=str(e))
            logger.info("scan_completed", scan_id=ctx.scan_id, duration=duration, **totals)
        else:
            # Cancelled between the last batch check and completion
            await self._scan_results.update(ctx.scan_id, **fields)
            status = await self._scan_results.get_status(ctx.scan_id)
            logger.warning("scan_finished_after_cancel", scan_id=ctx.scan_id, status=status)

        return {
            "scan_id": ctx.scan_id,
            "status": status,
            "duration": duration,
            "memory_usage": ctx.peak_rss,
            **totals,
        }

    async def _fail(self, ctx: _ScanContext, started: float, message: str) -> dict:
        duration = round(time.monotonic() - started, 3)
        logger.error("scan_failed", scan_id=ctx.scan_id, reason=message)
        try:
            await self._scan_results.transition(
                ctx.scan_id, (STATUS_RUNNING,), STATUS_FAILED,
                notes=message, scan_duration=duration, memory_usage=ctx.peak_rss,
                completed_at=utcnow(), **ctx.totals(),
            )
        except SQLAlchemyError as e:
            # Scan stays ``running``; it never reads as completed
            logger.error("scan_fail_state_not_recorded", scan_id=ctx.scan_id, error=str(e))
        return {
            "scan_id": ctx.scan_id,
            "status": STATUS_FAILED,
            "duration": duration,
            "notes": message,
            **ctx.totals(),
        }
