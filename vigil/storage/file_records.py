"""File record repository — per-scan FileRecord rows."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import case, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.file_record import (
    FILE_CHANGED,
    FILE_DELETED,
    FILE_NEW,
    FILE_UNCHANGED,
    FileRecord,
)
from ..models.scan_result import STATUS_COMPLETED, ScanResult

FILTERABLE_STATUSES = (FILE_NEW, FILE_CHANGED, FILE_DELETED)


@dataclass(frozen=True)
class SnapshotEntry:
    """The slice of a FileRecord the scanner compares against."""

    file_path: str
    checksum: str
    status: str
    file_size: int
    last_modified: Optional[datetime]


def record_to_dict(record: FileRecord) -> dict:
    return {
        "id": record.id,
        "scan_result_id": record.scan_result_id,
        "file_path": record.file_path,
        "file_size": record.file_size,
        "checksum": record.checksum,
        "status": record.status,
        "previous_checksum": record.previous_checksum,
        "is_sensitive": record.is_sensitive,
        "diff_content": record.diff_content,
        "last_modified": record.last_modified.isoformat() if record.last_modified else None,
        "priority_level": record.priority_level,
    }


class FileRecordRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def add_batch(self, scan_id: int, records: list[dict]) -> int:
        """Insert a batch of records for one scan in a single transaction."""
        if not records:
            return 0
        rows = [{**record, "scan_result_id": scan_id} for record in records]
        async with self._session_factory() as session:
            await session.execute(insert(FileRecord), rows)
            await session.commit()
        return len(rows)

    async def load_snapshot(self, scan_id: int) -> dict[str, SnapshotEntry]:
        """Load path -> SnapshotEntry for every record of a scan."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    FileRecord.file_path,
                    FileRecord.checksum,
                    FileRecord.status,
                    FileRecord.file_size,
                    FileRecord.last_modified,
                ).where(FileRecord.scan_result_id == scan_id)
            )
            return {row.file_path: SnapshotEntry(*row) for row in result}

    async def get_by_scan(self, scan_id: int, limit: Optional[int] = None) -> list[FileRecord]:
        query = (
            select(FileRecord)
            .where(FileRecord.scan_result_id == scan_id)
            .order_by(FileRecord.file_path)
        )
        if limit:
            query = query.limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_changed_files(self, scan_id: int) -> list[FileRecord]:
        """Non-unchanged records ordered changed, new, deleted, then by path."""
        order = case(
            (FileRecord.status == FILE_CHANGED, 1),
            (FileRecord.status == FILE_NEW, 2),
            (FileRecord.status == FILE_DELETED, 3),
            else_=4,
        )
        async with self._session_factory() as session:
            result = await session.execute(
                select(FileRecord)
                .where(FileRecord.scan_result_id == scan_id, FileRecord.status != FILE_UNCHANGED)
                .order_by(order, FileRecord.file_path)
            )
            return list(result.scalars().all())

    async def get_paginated(
        self, scan_id: int, page: int = 1, per_page: int = 50, status: str = ""
    ) -> dict:
        """Page through a scan's records.

        ``status="all"`` means every record except unchanged ones; an unknown
        status yields an empty page rather than an unfiltered one.
        """
        conditions = [FileRecord.scan_result_id == scan_id]
        if status == "all":
            conditions.append(FileRecord.status != FILE_UNCHANGED)
        elif status:
            if status not in FILTERABLE_STATUSES:
                return {"results": [], "total_count": 0}
            conditions.append(FileRecord.status == status)

        page = max(page, 1)
        async with self._session_factory() as session:
            rows = await session.execute(
                select(FileRecord)
                .where(*conditions)
                .order_by(FileRecord.file_path)
                .limit(per_page)
                .offset((page - 1) * per_page)
            )
            total = await session.execute(select(func.count(FileRecord.id)).where(*conditions))
            return {
                "results": list(rows.scalars().all()),
                "total_count": total.scalar() or 0,
            }

    async def get_latest_by_path(self, file_path: str) -> Optional[FileRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(FileRecord)
                .join(ScanResult, FileRecord.scan_result_id == ScanResult.id)
                .where(FileRecord.file_path == file_path, ScanResult.status == STATUS_COMPLETED)
                .order_by(ScanResult.scan_date.desc(), ScanResult.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def statistics(self, scan_id: int) -> dict:
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    func.count(FileRecord.id),
                    func.sum(case((FileRecord.status == FILE_CHANGED, 1), else_=0)),
                    func.sum(case((FileRecord.status == FILE_NEW, 1), else_=0)),
                    func.sum(case((FileRecord.status == FILE_DELETED, 1), else_=0)),
                    func.sum(case((FileRecord.status == FILE_UNCHANGED, 1), else_=0)),
                    func.sum(FileRecord.file_size),
                ).where(FileRecord.scan_result_id == scan_id)
            )
            total, changed, new, deleted, unchanged, size = result.one()
            return {
                "total_files": int(total or 0),
                "changed_files": int(changed or 0),
                "new_files": int(new or 0),
                "deleted_files": int(deleted or 0),
                "unchanged_files": int(unchanged or 0),
                "total_size": int(size or 0),
            }

    async def count_with_diff(self, scan_id: int) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count(FileRecord.id)).where(
                    FileRecord.scan_result_id == scan_id, FileRecord.diff_content.is_not(None)
                )
            )
            return result.scalar() or 0

    async def diff_content_size(self, scan_id: int) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.sum(func.length(FileRecord.diff_content))).where(
                    FileRecord.scan_result_id == scan_id, FileRecord.diff_content.is_not(None)
                )
            )
            return int(result.scalar() or 0)
