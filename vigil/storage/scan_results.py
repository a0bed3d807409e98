"""Scan result repository — ScanResult rows and the baseline pointer."""

from typing import Optional

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from ..errors import ScanNotFoundError, ScanStateError
from ..models.baseline_pointer import POINTER_ID, BaselinePointer
from ..models.base import utcnow
from ..models.file_record import FileRecord
from ..models.scan_result import (
    ACTIVE_STATUSES,
    SCAN_TYPE_MANUAL,
    SCAN_TYPES,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_RUNNING,
    ScanResult,
)
from ..utils.logging import get_logger

logger = get_logger("storage.scan_results")

UPDATABLE_FIELDS = {
    "status", "total_files", "changed_files", "new_files", "deleted_files",
    "unchanged_files", "total_size", "scan_duration", "memory_usage", "notes",
    "completed_at",
}


def scan_to_dict(scan: ScanResult, baseline_id: Optional[int]) -> dict:
    return {
        "id": scan.id,
        "scan_date": scan.scan_date.isoformat() if scan.scan_date else None,
        "status": scan.status,
        "scan_type": scan.scan_type,
        "total_files": scan.total_files,
        "changed_files": scan.changed_files,
        "new_files": scan.new_files,
        "deleted_files": scan.deleted_files,
        "unchanged_files": scan.unchanged_files,
        "total_size": scan.total_size,
        "scan_duration": scan.scan_duration,
        "memory_usage": scan.memory_usage,
        "is_baseline": baseline_id is not None and scan.id == baseline_id,
        "notes": scan.notes,
        "completed_at": scan.completed_at.isoformat() if scan.completed_at else None,
    }


class ScanResultRepository:
    """Persists one ScanResult per scan execution."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(
        self,
        scan_type: str = SCAN_TYPE_MANUAL,
        status: str = STATUS_RUNNING,
        notes: Optional[str] = None,
    ) -> ScanResult:
        if scan_type not in SCAN_TYPES:
            raise ValueError(f"scan_type must be one of {SCAN_TYPES}")
        if status not in ACTIVE_STATUSES:
            raise ValueError("A scan can only be created queued or running")
        async with self._session_factory() as session:
            scan = ScanResult(
                scan_date=utcnow(),
                status=status,
                scan_type=scan_type,
                notes=notes,
            )
            session.add(scan)
            await session.commit()
            await session.refresh(scan)
            return scan

    async def get(self, scan_id: int) -> Optional[ScanResult]:
        async with self._session_factory() as session:
            return await session.get(ScanResult, scan_id)

    async def require(self, scan_id: int) -> ScanResult:
        scan = await self.get(scan_id)
        if scan is None:
            raise ScanNotFoundError(scan_id)
        return scan

    async def get_status(self, scan_id: int) -> Optional[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ScanResult.status).where(ScanResult.id == scan_id)
            )
            return result.scalar_one_or_none()

    async def update(self, scan_id: int, **fields) -> bool:
        values = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        if not values:
            return False
        async with self._session_factory() as session:
            result = await session.execute(
                update(ScanResult).where(ScanResult.id == scan_id).values(**values)
            )
            await session.commit()
            return result.rowcount > 0

    async def transition(
        self, scan_id: int, from_statuses: tuple[str, ...], to_status: str, **fields
    ) -> bool:
        """Move a scan to ``to_status`` only if it is currently in ``from_statuses``.

        The check and the write are a single UPDATE, so a concurrent cancel
        and completion cannot both win.
        """
        values = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        values["status"] = to_status
        async with self._session_factory() as session:
            result = await session.execute(
                update(ScanResult)
                .where(ScanResult.id == scan_id, ScanResult.status.in_(from_statuses))
                .values(**values)
            )
            await session.commit()
            return result.rowcount > 0

    async def claim_running(self, scan_id: int) -> bool:
        """Move an active scan to ``running`` unless another scan is running.

        One conditional UPDATE, so two processes sharing the store cannot
        both hold a running scan. Returns False when nothing matched.
        """
        other = aliased(ScanResult)
        busy = select(other.id).where(
            other.status == STATUS_RUNNING, other.id != scan_id
        ).exists()
        async with self._session_factory() as session:
            result = await session.execute(
                update(ScanResult)
                .where(
                    ScanResult.id == scan_id,
                    ScanResult.status.in_(ACTIVE_STATUSES),
                    ~busy,
                )
                .values(status=STATUS_RUNNING)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount > 0

    async def fail_interrupted(self, note: str) -> int:
        """Mark scans left queued/running by a previous process as failed."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(ScanResult)
                .where(ScanResult.status.in_(ACTIVE_STATUSES))
                .values(status=STATUS_FAILED, notes=note, completed_at=utcnow())
            )
            await session.commit()
            return result.rowcount

    async def latest_completed(self) -> Optional[ScanResult]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ScanResult)
                .where(ScanResult.status == STATUS_COMPLETED)
                .order_by(ScanResult.scan_date.desc(), ScanResult.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def has_active_scan(self) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count(ScanResult.id)).where(ScanResult.status == STATUS_RUNNING)
            )
            return (result.scalar() or 0) > 0

    async def list_recent(self, limit: int = 10) -> list[ScanResult]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ScanResult)
                .order_by(ScanResult.scan_date.desc(), ScanResult.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_paginated(self, page: int = 1, per_page: int = 20) -> dict:
        page = max(page, 1)
        async with self._session_factory() as session:
            rows = await session.execute(
                select(ScanResult)
                .order_by(ScanResult.scan_date.desc(), ScanResult.id.desc())
                .limit(per_page)
                .offset((page - 1) * per_page)
            )
            total = await session.execute(select(func.count(ScanResult.id)))
            return {
                "results": list(rows.scalars().all()),
                "total_count": total.scalar() or 0,
            }

    async def statistics(self) -> dict:
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    func.count(ScanResult.id),
                    func.sum(case((ScanResult.status == STATUS_COMPLETED, 1), else_=0)),
                    func.sum(case((ScanResult.status == STATUS_FAILED, 1), else_=0)),
                    func.avg(
                        case((ScanResult.status == STATUS_COMPLETED, ScanResult.scan_duration), else_=None)
                    ),
                    func.sum(
                        case((ScanResult.status == STATUS_COMPLETED, ScanResult.changed_files), else_=0)
                    ),
                )
            )
            total, completed, failed, avg_duration, changed = result.one()
            return {
                "total_scans": int(total or 0),
                "completed_scans": int(completed or 0),
                "failed_scans": int(failed or 0),
                "avg_scan_duration": float(avg_duration or 0.0),
                "total_changed_files": int(changed or 0),
            }

    async def delete(self, scan_id: int) -> None:
        """Delete a finished scan and its file records."""
        scan = await self.require(scan_id)
        if scan.status in ACTIVE_STATUSES:
            raise ScanStateError(f"Scan {scan_id} is {scan.status} and cannot be deleted")
        if await self.get_baseline_id() == scan_id:
            raise ScanStateError(f"Scan {scan_id} is the current baseline and cannot be deleted")
        async with self._session_factory() as session:
            await session.execute(delete(FileRecord).where(FileRecord.scan_result_id == scan_id))
            await session.execute(delete(ScanResult).where(ScanResult.id == scan_id))
            await session.commit()
        logger.info("scan_deleted", scan_id=scan_id)

    # --- Baseline pointer ---

    async def get_baseline_id(self) -> Optional[int]:
        async with self._session_factory() as session:
            pointer = await session.get(BaselinePointer, POINTER_ID)
            return pointer.scan_result_id if pointer else None

    async def set_baseline(self, scan_id: int) -> None:
        """Point the baseline at ``scan_id``, replacing any previous baseline.

        The old reference is overwritten in the same transaction; there is
        never a moment with two baselines or a cleared-but-unset pointer.
        """
        scan = await self.require(scan_id)
        if scan.status != STATUS_COMPLETED:
            raise ScanStateError(f"Only completed scans can be a baseline (scan {scan_id} is {scan.status})")
        now = utcnow()
        stmt = sqlite_insert(BaselinePointer).values(
            id=POINTER_ID, scan_result_id=scan_id, updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[BaselinePointer.id],
            set_={"scan_result_id": scan_id, "updated_at": now},
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()
        logger.info("baseline_set", scan_id=scan_id)

    async def set_baseline_if_absent(self, scan_id: int) -> bool:
        """Set the baseline only when none exists. Returns True if set.

        The pointer row is seeded empty if missing, then claimed with an
        UPDATE that only matches while ``scan_result_id`` is NULL.
        """
        seed = sqlite_insert(BaselinePointer).values(
            id=POINTER_ID, scan_result_id=None, updated_at=utcnow()
        ).on_conflict_do_nothing(index_elements=[BaselinePointer.id])
        async with self._session_factory() as session:
            await session.execute(seed)
            result = await session.execute(
                update(BaselinePointer)
                .where(
                    BaselinePointer.id == POINTER_ID,
                    BaselinePointer.scan_result_id.is_(None),
                )
                .values(scan_result_id=scan_id)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            claimed = result.rowcount > 0
        if claimed:
            logger.info("baseline_established", scan_id=scan_id)
        return claimed

    async def clear_baseline(self) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(BaselinePointer)
                .where(BaselinePointer.id == POINTER_ID)
                .values(scan_result_id=None)
            )
            await session.commit()
