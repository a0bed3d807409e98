"""Baseline Pointer model — the single current-baseline reference."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow

POINTER_ID = 1


class BaselinePointer(Base):
    """Single-row table; ``scan_result_id`` is the current baseline or NULL."""

    __tablename__ = "baseline_pointer"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=POINTER_ID)
    scan_result_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("scan_results.id", ondelete="SET NULL"), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
