"""Incremental directory enumeration for the scanner."""

import os
from typing import Iterator, NamedTuple, Optional

from ..errors import ScanRootError
from ..utils.logging import get_logger
from .filters import FileFilter

logger = get_logger("scanner.walker")


class Candidate(NamedTuple):
    abs_path: str
    rel_path: str  # POSIX separators, relative to the scan root


def to_relative(root: str, abs_path: str) -> str:
    return os.path.relpath(abs_path, root).replace(os.sep, "/")


def iter_files(root: str, file_filter: Optional[FileFilter] = None) -> Iterator[Candidate]:
    """Yield readable regular files beneath ``root`` one at a time.

    Directories are listed one at a time, so memory tracks directory width
    rather than tree size. Symlinks are not followed. A failure listing the
    root raises ``ScanRootError``; failures below it are logged and skipped.
    """
    root = os.path.abspath(root)
    if not os.path.isdir(root):
        raise ScanRootError(f"Scan root is not a directory: {root}")
    try:
        with os.scandir(root) as it:
            top = sorted(it, key=lambda e: e.name)
    except OSError as e:
        raise ScanRootError(f"Cannot read scan root {root}: {e.strerror}") from e

    stack: list[list[os.DirEntry]] = [top]
    while stack:
        entries = stack.pop()
        subdirs: list[str] = []
        for entry in entries:
            rel_path = to_relative(root, entry.path)
            try:
                if entry.is_dir(follow_symlinks=False):
                    if file_filter is not None and file_filter.prunes_directory(rel_path):
                        continue
                    subdirs.append(entry.path)
                    continue
                if not entry.is_file(follow_symlinks=False):
                    continue
            except OSError as e:
                logger.debug("walker_entry_error", path=rel_path, error=str(e))
                continue
            if not os.access(entry.path, os.R_OK):
                logger.debug("walker_unreadable", path=rel_path)
                continue
            yield Candidate(entry.path, rel_path)

        # Reversed so the stack visits subdirectories in name order
        for path in reversed(subdirs):
            try:
                with os.scandir(path) as it:
                    stack.append(sorted(it, key=lambda e: e.name))
            except OSError as e:
                logger.warning("walker_directory_error", path=to_relative(root, path), error=str(e))
