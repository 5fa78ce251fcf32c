"""
Database engine and session management with SQLAlchemy async on SQLite.

The engine is created lazily on first use and disposed on shutdown. Every
new connection gets the store pragmas applied; transaction control is taken
over from the driver so that SAVEPOINTs (``session.begin_nested()``) behave.
"""

import logging
import os
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from core.config import settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None


def _ensure_parent_dir(url: str) -> None:
    database = make_url(url).database
    if database and database != ":memory:" and not database.startswith("file:"):
        parent = os.path.dirname(os.path.abspath(database))
        os.makedirs(parent, exist_ok=True)


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the structured store.

    Pragmas applied on connect:
        journal_mode=WAL       readers proceed while an import writes
        synchronous            NORMAL by default; a crash may lose the last
                               few commits, the store is rebuildable
        cache_size             bounded page cache (negative = KiB)
        temp_store=MEMORY
        foreign_keys=ON        defect rows cascade with their inspection
        busy_timeout
    """
    _ensure_parent_dir(url)

    engine = create_async_engine(
        url,
        echo=echo,
        poolclass=NullPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None

        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA synchronous={settings.DB_SYNCHRONOUS}")
        cursor.execute(f"PRAGMA cache_size=-{abs(settings.DB_CACHE_SIZE_KB)}")
        cursor.execute("PRAGMA temp_store=MEMORY")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={settings.DB_BUSY_TIMEOUT_MS}")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get("isolation_level") != "AUTOCOMMIT":
            conn.exec_driver_sql("BEGIN")

    return engine


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        logger.info("Opening structured store")
        _engine = create_engine_for(
            settings.DATABASE_URL,
            echo=settings.ENVIRONMENT == "debug",
        )
    return _engine


def get_session_maker() -> async_sessionmaker:
    """Return the process-wide session factory."""
    global _session_maker
    if _session_maker is None:
        _session_maker = make_session_maker(get_engine())
    return _session_maker


def make_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session"""
    async with get_session_maker()() as session:
        yield session


async def init_database(engine: Optional[AsyncEngine] = None) -> None:
    """Create all tables and indexes that do not exist yet."""
    from models import Base

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")


async def check_connection(session: AsyncSession) -> bool:
    """Run a trivial query against the store."""
    await session.execute(text("SELECT 1"))
    return True


async def close_database() -> None:
    """Dispose of the process-wide engine, if it was opened."""
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
        logger.info("Structured store closed")
    _engine = None
    _session_maker = None
