"""Content cache — encrypted, compressed, TTL-bound copies of file bytes.

Entries exist only so the next scan can diff a changed file against the
version it replaced. The cache is best-effort: every read failure is a miss.
"""

import hashlib
import hmac
from datetime import timedelta
from typing import Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import CacheIntegrityError
from ..models.base import utcnow
from ..models.content_cache import ContentCacheEntry
from ..utils.compression import Compressor
from ..utils.encryption import ContentCipher
from ..utils.logging import get_logger

logger = get_logger("storage.content_cache")

DEFAULT_TTL = timedelta(days=90)


class ContentCache:
    """Keyed by (file_path, checksum).

    Write pipeline: encrypt -> compress -> persist. Read pipeline runs the
    stages in reverse and re-verifies SHA-256 of the plaintext.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: ContentCipher,
        compressor: Optional[Compressor] = None,
        default_ttl: timedelta = DEFAULT_TTL,
    ):
        self._session_factory = session_factory
        self._cipher = cipher
        self._compressor = compressor or Compressor()
        self._default_ttl = default_ttl

    def seal(self, content: bytes) -> bytes:
        return self._compressor.compress(self._cipher.encrypt(content))

    def unseal(self, payload: bytes, checksum: str) -> bytes:
        content = self._cipher.decrypt(self._compressor.decompress(payload))
        if not hmac.compare_digest(hashlib.sha256(content).hexdigest(), checksum):
            raise CacheIntegrityError("Checksum mismatch after decryption")
        return content

    async def store(
        self,
        file_path: str,
        checksum: str,
        content: bytes,
        ttl: Optional[timedelta] = None,
        is_sensitive: bool = False,
    ) -> bool:
        """Cache ``content``. Sensitive files are refused.

        An existing (file_path, checksum) entry only has its expiry refreshed.
        """
        if is_sensitive:
            return False
        expires_at = utcnow() + (ttl if ttl is not None else self._default_ttl)
        try:
            if await self._refresh_expiry(file_path, checksum, expires_at):
                return True
            payload = self.seal(content)
            async with self._session_factory() as session:
                session.add(ContentCacheEntry(
                    file_path=file_path,
                    checksum=checksum,
                    payload=payload,
                    content_size=len(content),
                    expires_at=expires_at,
                ))
                await session.commit()
            return True
        except IntegrityError:
            # Stored concurrently under the same key
            return await self._refresh_expiry(file_path, checksum, expires_at)
        except SQLAlchemyError as e:
            logger.warning("content_cache_store_failed", file_path=file_path, error=str(e))
            return False

    async def get(self, file_path: str, checksum: str) -> Optional[bytes]:
        """Return the cached bytes, or None on miss, expiry, or corruption."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ContentCacheEntry.payload, ContentCacheEntry.expires_at).where(
                        ContentCacheEntry.file_path == file_path,
                        ContentCacheEntry.checksum == checksum,
                    )
                )
                row = result.one_or_none()
        except SQLAlchemyError as e:
            logger.warning("content_cache_read_failed", file_path=file_path, error=str(e))
            return None

        if row is None:
            return None
        payload, expires_at = row
        if expires_at < utcnow():
            await self._delete_entry(file_path, checksum)
            return None
        try:
            return self.unseal(payload, checksum)
        except CacheIntegrityError as e:
            logger.warning("content_cache_corrupt_entry", file_path=file_path, reason=str(e))
            await self._delete_entry(file_path, checksum)
            return None

    async def exists(self, file_path: str, checksum: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count(ContentCacheEntry.id)).where(
                    ContentCacheEntry.file_path == file_path,
                    ContentCacheEntry.checksum == checksum,
                    ContentCacheEntry.expires_at >= utcnow(),
                )
            )
            return (result.scalar() or 0) > 0

    async def cleanup_expired(self) -> int:
        """Delete every entry past its expiry. Returns the number removed."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ContentCacheEntry).where(ContentCacheEntry.expires_at < utcnow())
            )
            await session.commit()
        deleted = result.rowcount or 0
        logger.info("content_cache_cleanup", deleted=deleted)
        return deleted

    async def clear_paths(self, file_paths: Iterable[str]) -> int:
        paths = list(file_paths)
        if not paths:
            return 0
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ContentCacheEntry).where(ContentCacheEntry.file_path.in_(paths))
            )
            await session.commit()
            return result.rowcount or 0

    async def clear_all(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(delete(ContentCacheEntry))
            await session.commit()
            return result.rowcount or 0

    async def statistics(self) -> dict:
        now = utcnow()
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    func.count(ContentCacheEntry.id),
                    func.sum(func.length(ContentCacheEntry.payload)),
                    func.sum(ContentCacheEntry.content_size),
                    func.min(ContentCacheEntry.created_at),
                    func.max(ContentCacheEntry.created_at),
                    func.min(ContentCacheEntry.expires_at),
                )
            )
            total, stored_size, content_size, oldest, newest, next_expiration = result.one()
            expired = await session.execute(
                select(func.count(ContentCacheEntry.id)).where(ContentCacheEntry.expires_at < now)
            )
        return {
            "total_entries": int(total or 0),
            "total_size": int(stored_size or 0),
            "total_content_size": int(content_size or 0),
            "expired_entries": int(expired.scalar() or 0),
            "oldest_entry": oldest.isoformat() if oldest else None,
            "newest_entry": newest.isoformat() if newest else None,
            "next_expiration": next_expiration.isoformat() if next_expiration else None,
        }

    async def _refresh_expiry(self, file_path: str, checksum: str, expires_at) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(ContentCacheEntry)
                .where(
                    ContentCacheEntry.file_path == file_path,
                    ContentCacheEntry.checksum == checksum,
                )
                .values(expires_at=expires_at)
            )
            await session.commit()
            return result.rowcount > 0

    async def _delete_entry(self, file_path: str, checksum: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(ContentCacheEntry).where(
                        ContentCacheEntry.file_path == file_path,
                        ContentCacheEntry.checksum == checksum,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.warning("content_cache_delete_failed", file_path=file_path, error=str(e))
