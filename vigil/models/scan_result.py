"""Scan Result model — one row per scan execution."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow

STATUS_QUEUED = "queued"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"

ACTIVE_STATUSES = (STATUS_QUEUED, STATUS_RUNNING)
FINISHED_STATUSES = (STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELLED)

SCAN_TYPE_MANUAL = "manual"
SCAN_TYPE_SCHEDULED = "scheduled"
SCAN_TYPES = (SCAN_TYPE_MANUAL, SCAN_TYPE_SCHEDULED)


class ScanResult(Base):
    __tablename__ = "scan_results"
    __table_args__ = (
        Index("ix_scan_results_status_date", "status", "scan_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scan_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default=STATUS_RUNNING, nullable=False)
    scan_type: Mapped[str] = mapped_column(String(20), default=SCAN_TYPE_MANUAL, nullable=False)
    total_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    changed_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    new_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    deleted_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unchanged_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    scan_duration: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    memory_usage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    file_records = relationship(
        "FileRecord",
        back_populates="scan_result",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
