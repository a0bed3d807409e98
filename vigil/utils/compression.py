"""zlib compression stage for cached payloads."""

import zlib

from ..errors import CacheIntegrityError


class Compressor:
    def __init__(self, level: int = 9):
        self._level = level

    def compress(self, data: bytes) -> bytes:
        return zlib.compress(data, self._level)

    def decompress(self, data: bytes) -> bytes:
        try:
            return zlib.decompress(data)
        except zlib.error as e:
            raise CacheIntegrityError(f"Decompression failed: {e}") from e
