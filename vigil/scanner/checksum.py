"""Checksum engine — streaming SHA-256 over a single file."""

import hashlib
import hmac
import os
import stat

try:
    import fcntl
except ImportError:  # Windows has no flock; files are read without the probe
    fcntl = None

from ..errors import ChecksumSkipped

HASH_ALGORITHM = "sha256"
CHUNK_SIZE = 65536


class ChecksumEngine:
    """Computes lowercase hex SHA-256 digests with bounded memory.

    Ineligible files raise ``ChecksumSkipped``: missing, not a regular file,
    unreadable, empty, larger than ``max_file_size``, or currently holding a
    conflicting advisory lock.
    """

    def __init__(self, max_file_size: int, chunk_size: int = CHUNK_SIZE):
        self._max_file_size = max_file_size
        self._chunk_size = chunk_size

    @property
    def algorithm(self) -> str:
        return HASH_ALGORITHM

    def checksum(self, path: str) -> str:
        try:
            st = os.stat(path)
        except FileNotFoundError:
            raise ChecksumSkipped("file does not exist", path)
        except OSError as e:
            raise ChecksumSkipped(f"stat failed: {e.strerror}", path)

        if not stat.S_ISREG(st.st_mode):
            raise ChecksumSkipped("not a regular file", path)
        if st.st_size == 0:
            raise ChecksumSkipped("empty file", path)
        if st.st_size > self._max_file_size:
            raise ChecksumSkipped("exceeds maximum file size", path)

        try:
            with open(path, "rb") as f:
                if fcntl is not None:
                    try:
                        fcntl.flock(f.fileno(), fcntl.LOCK_SH | fcntl.LOCK_NB)
                    except OSError:
                        raise ChecksumSkipped("file is locked by a writer", path)
                try:
                    sha = hashlib.sha256()
                    while True:
                        chunk = f.read(self._chunk_size)
                        if not chunk:
                            break
                        sha.update(chunk)
                finally:
                    if fcntl is not None:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except PermissionError:
            raise ChecksumSkipped("permission denied", path)
        except OSError as e:
            raise ChecksumSkipped(f"read failed: {e.strerror}", path)
        return sha.hexdigest()

    def verify(self, path: str, expected: str) -> bool:
        """Constant-time comparison of the file's digest against ``expected``."""
        try:
            current = self.checksum(path)
        except ChecksumSkipped:
            return False
        return hmac.compare_digest(current, expected.lower())
