"""SQLAlchemy models package."""

from .base import Base
from .scan_result import ScanResult
from .file_record import FileRecord
from .content_cache import ContentCacheEntry
from .baseline_pointer import BaselinePointer

__all__ = [
    "Base",
    "ScanResult",
    "FileRecord",
    "ContentCacheEntry",
    "BaselinePointer",
]
