"""Repositories over the scan, file record, and content cache tables."""

from .content_cache import ContentCache
from .file_records import FileRecordRepository, SnapshotEntry
from .scan_results import ScanResultRepository

__all__ = [
    "ContentCache",
    "FileRecordRepository",
    "ScanResultRepository",
    "SnapshotEntry",
]
