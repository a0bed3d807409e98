"""Shared test fixtures — in-memory store, scan trees, wired modules."""

import os
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from vigil.config import VigilConfig
from vigil.database import enable_sqlite_foreign_keys
from vigil.models.base import Base
from vigil.settings_provider import ConfigSettingsProvider
from vigil.storage.content_cache import ContentCache
from vigil.storage.file_records import FileRecordRepository
from vigil.storage.scan_results import ScanResultRepository
from vigil.utils.encryption import ContentCipher

TEST_SECRET = "test-secret-key-for-vigil"


def make_config(**overrides) -> VigilConfig:
    """VigilConfig that ignores any local .env file."""
    values = {
        "secret_key": TEST_SECRET,
        "database_url": "sqlite+aiosqlite://",
        "scan_file_types": ["php", "js", "css", "txt", "html"],
        "exclude_patterns": ["*/cache/*"],
        "text_extensions": ["php", "js", "css", "txt", "html", "json"],
    }
    values.update(overrides)
    return VigilConfig(_env_file=None, **values)


def make_settings(**overrides) -> ConfigSettingsProvider:
    return ConfigSettingsProvider(make_config(**overrides))


def write_file(root: Path, rel_path: str, content) -> Path:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, str):
        content = content.encode()
    path.write_bytes(content)
    return path


@pytest_asyncio.fixture
async def engine():
    """Shared in-memory SQLite engine with FK enforcement (StaticPool)."""
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(eng)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def scan_repo(session_factory):
    return ScanResultRepository(session_factory)


@pytest.fixture
def record_repo(session_factory):
    return FileRecordRepository(session_factory)


@pytest.fixture
def content_cache(session_factory):
    return ContentCache(session_factory, ContentCipher(TEST_SECRET))


@pytest.fixture
def site(tmp_path):
    """Empty scan root."""
    root = tmp_path / "site"
    root.mkdir()
    return root


@pytest_asyncio.fixture
async def make_integrity(session_factory, site):
    """Factory for FileIntegrity modules wired to the in-memory store."""
    from vigil.modules.file_integrity import FileIntegrity

    created = []

    def _make(root=None, batch_size=256, **overrides):
        fi = FileIntegrity(config={
            "scan_root": str(root or site),
            "scan_batch_size": batch_size,
            "checksum_workers": 2,
            "secret_key": TEST_SECRET,
        })
        fi.set_db_session_factory(session_factory)
        fi.set_settings_provider(make_settings(**overrides))
        created.append(fi)
        return fi

    yield _make

    for fi in created:
        await fi.stop()


@pytest.fixture
def unreadable_supported():
    """Permission bits are not enforced for root or on Windows."""
    return os.name != "nt" and hasattr(os, "geteuid") and os.geteuid() != 0
