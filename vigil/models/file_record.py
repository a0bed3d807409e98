"""File Record model — one row per file per scan."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

FILE_NEW = "new"
FILE_CHANGED = "changed"
FILE_DELETED = "deleted"
FILE_UNCHANGED = "unchanged"
FILE_STATUSES = (FILE_NEW, FILE_CHANGED, FILE_DELETED, FILE_UNCHANGED)

PRIORITY_CRITICAL = "critical"
PRIORITY_HIGH = "high"
PRIORITY_NORMAL = "normal"
PRIORITY_LEVELS = (PRIORITY_CRITICAL, PRIORITY_HIGH, PRIORITY_NORMAL)


class FileRecord(Base):
    __tablename__ = "file_records"
    __table_args__ = (
        Index("ix_file_records_scan_path", "scan_result_id", "file_path"),
        Index("ix_file_records_scan_status", "scan_result_id", "status"),
        Index("ix_file_records_priority", "priority_level"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scan_result_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("scan_results.id", ondelete="CASCADE"), nullable=False
    )
    # Relative to the scan root, POSIX separators
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Empty only for deleted files
    checksum: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=FILE_UNCHANGED, nullable=False)
    previous_checksum: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_sensitive: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    diff_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_modified: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    priority_level: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    scan_result = relationship("ScanResult", back_populates="file_records")
