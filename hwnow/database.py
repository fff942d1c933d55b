"""SQLite engine for the dashboard store and resource logs.

The engine and session factory are process-wide singletons created on first
use. SQLite PRAGMAs are per connection, so they are applied from a
``connect`` listener rather than once at startup.
"""

from pathlib import Path

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import HWnowConfig
from .models.base import Base
from .utils.logging import get_logger

logger = get_logger("database")

_engine = None
_session_factory = None


def _sqlite_file(database_url: str) -> Path | None:
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite") or not url.database or url.database == ":memory:":
        return None
    return Path(url.database)


def _install_pragmas(engine: AsyncEngine, config: HWnowConfig) -> None:
    pragmas = [f"PRAGMA busy_timeout={config.db_busy_timeout}"]
    if config.db_wal_mode:
        pragmas += ["PRAGMA journal_mode=WAL", f"PRAGMA synchronous={config.db_synchronous}"]

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        for pragma in pragmas:
            cursor.execute(pragma)
        cursor.close()


def get_engine(config: HWnowConfig) -> AsyncEngine:
    global _engine
    if _engine is None:
        db_file = _sqlite_file(config.database_url)
        if db_file is not None:
            db_file.parent.mkdir(parents=True, exist_ok=True)
        _engine = create_async_engine(
            config.database_url,
            echo=config.debug,
            pool_pre_ping=True,
            connect_args={"timeout": 30},
        )
        if config.database_url.startswith("sqlite"):
            _install_pragmas(_engine, config)
        logger.info("database_engine_created", path=str(db_file) if db_file else "memory")
    return _engine


def get_session_factory(config: HWnowConfig) -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(config), expire_on_commit=False)
    return _session_factory


async def create_tables(config: HWnowConfig) -> None:
    """Create the pages, widget_states and resource_logs tables if missing."""
    async with get_engine(config).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(
        "database_ready",
        wal=config.db_wal_mode,
        busy_timeout=config.db_busy_timeout,
        synchronous=config.db_synchronous,
    )


async def check_connection(config: HWnowConfig) -> bool:
    try:
        async with get_engine(config).connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("database_check_failed", error=str(e))
        return False
    return True


async def close_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
