"""Database engine, session management, and table creation.

SQLite connection PRAGMAs are applied from a ``connect`` listener so every
pooled connection gets them, not only the one that ran ``create_tables``.
"""

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import VigilConfig
from .models.base import Base
from .utils.logging import get_logger

logger = get_logger("database")

SYNCHRONOUS_MODES = ("OFF", "NORMAL", "FULL", "EXTRA")

_engine = None
_session_factory = None


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_memory(url: str) -> bool:
    return make_url(url).database in (None, "", ":memory:")


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """Turn on FK enforcement for every new SQLite connection.

    The baseline pointer's SET NULL depends on it.
    """
    _on_connect(engine, ["PRAGMA foreign_keys=ON"])


def _on_connect(engine: AsyncEngine, pragmas: list[str]) -> None:
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _apply(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        for pragma in pragmas:
            cursor.execute(pragma)
        cursor.close()


def _sqlite_pragmas(config: VigilConfig) -> list[str]:
    pragmas = ["PRAGMA foreign_keys=ON"]
    if config.db_wal_mode and not _is_memory(config.database_url):
        synchronous = config.db_synchronous.upper()
        if synchronous not in SYNCHRONOUS_MODES:
            raise ValueError(f"db_synchronous must be one of {SYNCHRONOUS_MODES}")
        pragmas += [
            "PRAGMA journal_mode=WAL",
            f"PRAGMA busy_timeout={int(config.db_busy_timeout)}",
            f"PRAGMA synchronous={synchronous}",
        ]
    return pragmas


def get_engine(config: VigilConfig):
    """Get or create the async database engine."""
    global _engine
    if _engine is None:
        sqlite = _is_sqlite(config.database_url)
        _engine = create_async_engine(
            config.database_url,
            echo=config.debug,
            pool_pre_ping=True,
            connect_args={"timeout": 30} if sqlite else {},
        )
        if sqlite:
            pragmas = _sqlite_pragmas(config)
            _on_connect(_engine, pragmas)
            logger.info("sqlite_pragmas_registered", pragmas=len(pragmas))
    return _engine


def get_session_factory(config: VigilConfig) -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory."""
    global _session_factory
    if _session_factory is None:
        engine = get_engine(config)
        _session_factory = async_sessionmaker(engine, expire_on_commit=False)
    return _session_factory


async def create_tables(config: VigilConfig) -> None:
    """Create any missing tables."""
    engine = get_engine(config)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_ready", url=config.database_url.split("?", 1)[0])


async def close_engine() -> None:
    """Close the database engine."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
