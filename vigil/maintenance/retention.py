"""Tiered retention — ages scan history from full detail to summary to gone.

Tier 1: the baseline scan, never touched while ``keep_baseline`` is set.
Tier 2: scans newer than ``tier2_days`` keep their diff_content.
Tier 3: scans between ``tier2_days`` and ``tier3_days`` lose diff_content.
Older: the ScanResult and its FileRecords are deleted, unless the scan owns
a critical-priority record.
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.base import utcnow
from ..models.baseline_pointer import POINTER_ID, BaselinePointer
from ..models.file_record import PRIORITY_CRITICAL, FileRecord
from ..models.scan_result import FINISHED_STATUSES, ScanResult
from ..settings_provider import SettingsProvider
from ..utils.logging import get_logger

logger = get_logger("maintenance.retention")


class RetentionManager:
    """Applies the tiered retention policy to finished scans.

    Only finished scans are ever candidates, so a sweep can run while a
    scan is in progress. Every statement is row-scoped and re-running a
    sweep with the same clock is a no-op.
    """

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        settings: SettingsProvider,
        keep_baseline: bool = True,
    ):
        self._session_factory = db_session_factory
        self._settings = settings
        self._keep_baseline = keep_baseline

    async def prune_tiered(
        self,
        tier2_days: Optional[int] = None,
        tier3_days: Optional[int] = None,
        keep_baseline: Optional[bool] = None,
        now=None,
    ) -> dict:
        """Run one sweep. Returns {tier3_diffs_removed, scans_deleted}."""
        if tier2_days is None:
            tier2_days = self._settings.get_retention_tier2_days()
        if tier3_days is None:
            tier3_days = self._settings.get_retention_tier3_days()
        if keep_baseline is None:
            keep_baseline = self._keep_baseline
        if tier2_days < 0 or tier3_days <= tier2_days:
            raise ValueError("Retention tiers require 0 <= tier2_days < tier3_days")

        now = now or utcnow()
        tier2_cutoff = now - timedelta(days=tier2_days)
        tier3_cutoff = now - timedelta(days=tier3_days)

        async with self._session_factory() as session:
            baseline_id = (
                await session.execute(
                    select(BaselinePointer.scan_result_id).where(BaselinePointer.id == POINTER_ID)
                )
            ).scalar_one_or_none()

            finished = [ScanResult.status.in_(FINISHED_STATUSES)]
            if keep_baseline and baseline_id is not None:
                finished.append(ScanResult.id != baseline_id)

            # --- Tier 3: strip diffs ---
            aging = select(ScanResult.id).where(*finished, ScanResult.scan_date < tier2_cutoff)
            result = await session.execute(
                update(FileRecord)
                .where(FileRecord.scan_result_id.in_(aging), FileRecord.diff_content.is_not(None))
                .values(diff_content=None)
                .execution_options(synchronize_session=False)
            )
            diffs_removed = result.rowcount
            logger.info(
                "retention_tier3_stripped",
                diffs_removed=diffs_removed,
                cutoff_days=tier2_days,
            )

            # --- Beyond tier 3: delete, sparing scans with critical files ---
            has_critical = exists().where(
                FileRecord.scan_result_id == ScanResult.id,
                FileRecord.priority_level == PRIORITY_CRITICAL,
            )
            expired_ids = list((
                await session.execute(
                    select(ScanResult.id).where(
                        *finished, ScanResult.scan_date < tier3_cutoff, ~has_critical
                    )
                )
            ).scalars().all())

            scans_deleted = 0
            if expired_ids:
                await session.execute(
                    delete(FileRecord)
                    .where(FileRecord.scan_result_id.in_(expired_ids))
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(
                    delete(ScanResult)
                    .where(ScanResult.id.in_(expired_ids))
                    .execution_options(synchronize_session=False)
                )
                scans_deleted = result.rowcount
                if baseline_id in expired_ids:
                    await session.execute(
                        update(BaselinePointer)
                        .where(BaselinePointer.id == POINTER_ID)
                        .values(scan_result_id=None)
                    )
                    logger.warning("retention_baseline_deleted", scan_id=baseline_id)
            logger.info(
                "retention_scans_deleted",
                scans_deleted=scans_deleted,
                cutoff_days=tier3_days,
            )

            await session.commit()

        summary = {"tier3_diffs_removed": diffs_removed, "scans_deleted": scans_deleted}
        logger.info("retention_sweep_complete", **summary)
        return summary
