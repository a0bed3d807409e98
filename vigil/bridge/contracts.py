"""Bridge contracts — Pydantic models defining API request and response shapes."""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


# ── Scans ──
class ScanTriggerRequest(BaseModel):
    scan_type: Literal["manual", "scheduled"] = "manual"
    background: bool = False


class ScanTriggerResponse(BaseModel):
    scan_id: int
    status: str


class ScanResultResponse(BaseModel):
    id: int
    scan_date: Optional[str] = None
    status: str
    scan_type: str
    total_files: int = 0
    changed_files: int = 0
    new_files: int = 0
    deleted_files: int = 0
    unchanged_files: int = 0
    total_size: int = 0
    scan_duration: float = 0.0
    memory_usage: int = 0
    is_baseline: bool = False
    notes: Optional[str] = None
    completed_at: Optional[str] = None


class ScanListResponse(BaseModel):
    results: list[ScanResultResponse] = []
    total_count: int = 0
    page: int = 1
    per_page: int = 20


class ScanSummaryResponse(BaseModel):
    scan_id: int
    status: str
    scan_type: str
    scan_date: Optional[str] = None
    total: int = 0
    changed: int = 0
    new: int = 0
    deleted: int = 0
    unchanged: int = 0
    notes: Optional[str] = None


# ── File records ──
class FileRecordResponse(BaseModel):
    id: int
    scan_result_id: int
    file_path: str
    file_size: int = 0
    checksum: str = ""
    status: str
    previous_checksum: Optional[str] = None
    is_sensitive: bool = False
    diff_content: Optional[str] = None
    last_modified: Optional[str] = None
    priority_level: Optional[str] = None


class FileRecordListResponse(BaseModel):
    results: list[FileRecordResponse] = []
    total_count: int = 0
    page: int = 1
    per_page: int = 50


# ── Maintenance ──
class PruneRequest(BaseModel):
    tier2_days: Optional[int] = Field(default=None, ge=0)
    tier3_days: Optional[int] = Field(default=None, gt=0)
    keep_baseline: Optional[bool] = None


class PruneResponse(BaseModel):
    tier3_diffs_removed: int = 0
    scans_deleted: int = 0


class CacheCleanupResponse(BaseModel):
    expired_entries_removed: int = 0


class CacheStatsResponse(BaseModel):
    total_entries: int = 0
    total_size: int = 0
    total_content_size: int = 0
    expired_entries: int = 0
    oldest_entry: Optional[str] = None
    newest_entry: Optional[str] = None
    next_expiration: Optional[str] = None


# ── Dashboard / health ──
class ScanStatisticsResponse(BaseModel):
    total_scans: int = 0
    completed_scans: int = 0
    failed_scans: int = 0
    avg_scan_duration: float = 0.0
    total_changed_files: int = 0


class DashboardStatsResponse(BaseModel):
    latest_scan: Optional[ScanResultResponse] = None
    baseline_scan_id: Optional[int] = None
    statistics: ScanStatisticsResponse


class HealthResponse(BaseModel):
    status: str
    version: str
    modules: dict = {}
