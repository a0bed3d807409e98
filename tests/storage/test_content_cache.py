"""Tests for the encrypted, compressed content cache."""

import hashlib
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from vigil.models.base import utcnow
from vigil.models.content_cache import ContentCacheEntry


def _digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


async def _entry_count(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count(ContentCacheEntry.id)))
        return result.scalar()


class TestStoreAndGet:
    @pytest.mark.asyncio
    async def test_round_trip(self, content_cache):
        """store then get returns byte-identical content."""
        content = b"<?php\necho 'hello';\n\x00\xff"
        checksum = _digest(content)
        assert await content_cache.store("index.php", checksum, content, ttl=timedelta(hours=1)) is True
        assert await content_cache.get("index.php", checksum) == content

    @pytest.mark.asyncio
    async def test_sensitive_content_refused(self, content_cache, session_factory):
        content = b"DB_PASSWORD=hunter2"
        checksum = _digest(content)
        stored = await content_cache.store(
            ".env", checksum, content, ttl=timedelta(hours=1), is_sensitive=True
        )
        assert stored is False
        assert await content_cache.get(".env", checksum) is None
        assert await _entry_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_payload_is_not_plaintext(self, content_cache, session_factory):
        content = b"very recognisable plaintext " * 10
        await content_cache.store("a.txt", _digest(content), content)
        async with session_factory() as session:
            payload = (await session.execute(select(ContentCacheEntry.payload))).scalar_one()
        assert b"recognisable" not in payload

    @pytest.mark.asyncio
    async def test_existing_entry_only_refreshes_expiry(self, content_cache, session_factory):
        content = b"body"
        checksum = _digest(content)
        await content_cache.store("a.txt", checksum, content, ttl=timedelta(hours=1))
        await content_cache.store("a.txt", checksum, content, ttl=timedelta(days=10))
        assert await _entry_count(session_factory) == 1
        async with session_factory() as session:
            expires_at = (await session.execute(select(ContentCacheEntry.expires_at))).scalar_one()
        assert expires_at > utcnow() + timedelta(days=9)

    @pytest.mark.asyncio
    async def test_same_path_different_checksums_coexist(self, content_cache):
        old, new = b"version one", b"version two"
        await content_cache.store("a.txt", _digest(old), old)
        await content_cache.store("a.txt", _digest(new), new)
        assert await content_cache.get("a.txt", _digest(old)) == old
        assert await content_cache.get("a.txt", _digest(new)) == new

    @pytest.mark.asyncio
    async def test_miss_returns_none(self, content_cache):
        assert await content_cache.get("missing.php", "0" * 64) is None


class TestIntegrityFailures:
    @pytest.mark.asyncio
    async def test_tampered_payload_is_a_miss_and_removed(self, content_cache, session_factory):
        """Flipping one stored byte gives None, not an exception or garbage."""
        content = b"function check() { return true; }\n" * 5
        checksum = _digest(content)
        await content_cache.store("lib.js", checksum, content)

        async with session_factory() as session:
            entry = (await session.execute(select(ContentCacheEntry))).scalar_one()
            corrupted = bytearray(entry.payload)
            corrupted[len(corrupted) // 2] ^= 0xFF
            entry.payload = bytes(corrupted)
            await session.commit()

        assert await content_cache.get("lib.js", checksum) is None
        assert await _entry_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_checksum_mismatch_is_a_miss(self, content_cache, session_factory):
        """Content stored under the wrong checksum fails verification."""
        wrong = "f" * 64
        await content_cache.store("a.txt", wrong, b"actual content")
        assert await content_cache.get("a.txt", wrong) is None
        assert await _entry_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_other_secret_cannot_read(self, session_factory, content_cache):
        from vigil.storage.content_cache import ContentCache
        from vigil.utils.encryption import ContentCipher

        content = b"shared row"
        await content_cache.store("a.txt", _digest(content), content)
        other = ContentCache(session_factory, ContentCipher("a-different-secret"))
        assert await other.get("a.txt", _digest(content)) is None


class TestExpiry:
    @pytest.mark.asyncio
    async def test_expired_entry_is_a_miss(self, content_cache, session_factory):
        content = b"old"
        checksum = _digest(content)
        await content_cache.store("a.txt", checksum, content)
        async with session_factory() as session:
            await session.execute(
                update(ContentCacheEntry).values(expires_at=utcnow() - timedelta(seconds=1))
            )
            await session.commit()
        assert await content_cache.exists("a.txt", checksum) is False
        assert await content_cache.get("a.txt", checksum) is None
        assert await _entry_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, content_cache, session_factory):
        for name in ("a.txt", "b.txt", "c.txt"):
            data = name.encode()
            await content_cache.store(name, _digest(data), data)
        async with session_factory() as session:
            await session.execute(
                update(ContentCacheEntry)
                .where(ContentCacheEntry.file_path != "c.txt")
                .values(expires_at=utcnow() - timedelta(days=1))
            )
            await session.commit()

        assert await content_cache.cleanup_expired() == 2
        assert await content_cache.cleanup_expired() == 0
        assert await content_cache.exists("c.txt", _digest(b"c.txt")) is True


class TestHousekeeping:
    @pytest.mark.asyncio
    async def test_statistics(self, content_cache):
        empty = await content_cache.statistics()
        assert empty["total_entries"] == 0
        assert empty["oldest_entry"] is None

        await content_cache.store("a.txt", _digest(b"aaaa"), b"aaaa")
        stats = await content_cache.statistics()
        assert stats["total_entries"] == 1
        assert stats["total_content_size"] == 4
        assert stats["total_size"] > 0
        assert stats["expired_entries"] == 0
        assert stats["next_expiration"] is not None

    @pytest.mark.asyncio
    async def test_clear_paths_and_all(self, content_cache):
        for name in ("a.txt", "b.txt", "c.txt"):
            await content_cache.store(name, _digest(name.encode()), name.encode())
        assert await content_cache.clear_paths(["a.txt", "b.txt"]) == 2
        assert await content_cache.clear_paths([]) == 0
        assert await content_cache.clear_all() == 1
