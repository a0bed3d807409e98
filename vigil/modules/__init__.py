"""Long-running service modules."""

from .base_module import BaseModule
from .file_integrity import FileIntegrity

__all__ = [
    "BaseModule",
    "FileIntegrity",
]
