"""Tests for the streaming checksum engine."""

import hashlib

import pytest

from vigil.errors import ChecksumSkipped
from vigil.scanner import checksum as checksum_mod
from vigil.scanner.checksum import ChecksumEngine


@pytest.fixture
def engine():
    return ChecksumEngine(max_file_size=1024, chunk_size=7)


class TestChecksum:
    def test_matches_sha256(self, engine, tmp_path):
        path = tmp_path / "a.php"
        path.write_bytes(b"hello world")
        assert engine.checksum(str(path)) == hashlib.sha256(b"hello world").hexdigest()

    def test_deterministic(self, engine, tmp_path):
        """Two calls on an unmodified file agree."""
        path = tmp_path / "a.php"
        path.write_bytes(b"stable content")
        first = engine.checksum(str(path))
        assert engine.checksum(str(path)) == first
        assert len(first) == 64
        assert first == first.lower()

    def test_single_byte_change(self, engine, tmp_path):
        path = tmp_path / "a.php"
        path.write_bytes(b"content-A")
        before = engine.checksum(str(path))
        path.write_bytes(b"content-B")
        assert engine.checksum(str(path)) != before

    def test_streams_across_chunks(self, tmp_path):
        """Chunk size does not change the digest."""
        data = bytes(range(256)) * 3
        path = tmp_path / "blob.txt"
        path.write_bytes(data)
        small = ChecksumEngine(4096, chunk_size=5).checksum(str(path))
        large = ChecksumEngine(4096, chunk_size=65536).checksum(str(path))
        assert small == large == hashlib.sha256(data).hexdigest()

    def test_algorithm(self, engine):
        assert engine.algorithm == "sha256"


class TestChecksumSkips:
    def test_missing_file(self, engine, tmp_path):
        with pytest.raises(ChecksumSkipped) as exc:
            engine.checksum(str(tmp_path / "gone.php"))
        assert exc.value.reason == "file does not exist"

    def test_directory(self, engine, tmp_path):
        with pytest.raises(ChecksumSkipped) as exc:
            engine.checksum(str(tmp_path))
        assert exc.value.reason == "not a regular file"

    def test_empty_file(self, engine, tmp_path):
        path = tmp_path / "empty.php"
        path.write_bytes(b"")
        with pytest.raises(ChecksumSkipped) as exc:
            engine.checksum(str(path))
        assert exc.value.reason == "empty file"

    def test_oversized_file(self, engine, tmp_path):
        path = tmp_path / "big.php"
        path.write_bytes(b"x" * 1025)
        with pytest.raises(ChecksumSkipped) as exc:
            engine.checksum(str(path))
        assert exc.value.reason == "exceeds maximum file size"

    def test_exactly_max_size_allowed(self, engine, tmp_path):
        path = tmp_path / "edge.php"
        path.write_bytes(b"x" * 1024)
        assert engine.checksum(str(path))

    @pytest.mark.skipif(checksum_mod.fcntl is None, reason="advisory locks need fcntl")
    def test_locked_file_is_skipped(self, engine, tmp_path):
        """A file held under an exclusive lock is skipped, not waited on."""
        fcntl = checksum_mod.fcntl
        path = tmp_path / "busy.php"
        path.write_bytes(b"being written")
        with open(path, "rb") as writer:
            fcntl.flock(writer.fileno(), fcntl.LOCK_EX)
            try:
                with pytest.raises(ChecksumSkipped) as exc:
                    engine.checksum(str(path))
                assert exc.value.reason == "file is locked by a writer"
            finally:
                fcntl.flock(writer.fileno(), fcntl.LOCK_UN)
        assert engine.checksum(str(path))


class TestVerify:
    def test_verify_match_and_mismatch(self, engine, tmp_path):
        path = tmp_path / "a.php"
        path.write_bytes(b"data")
        digest = hashlib.sha256(b"data").hexdigest()
        assert engine.verify(str(path), digest) is True
        assert engine.verify(str(path), digest.upper()) is True
        assert engine.verify(str(path), "0" * 64) is False

    def test_verify_skipped_file_is_false(self, engine, tmp_path):
        assert engine.verify(str(tmp_path / "missing"), "0" * 64) is False
