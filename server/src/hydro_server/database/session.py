"""Database session management."""

import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .base import Base
from .config import get_database_echo, get_database_url

logger = logging.getLogger(__name__)


# Execution option that opens the transaction with BEGIN IMMEDIATE on SQLite
WRITE_LOCK_OPTION = "hydro_write_lock"


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """Let write sessions take the SQLite write lock at BEGIN.

    SQLite has no row locks. Claim/complete transactions that start with
    BEGIN IMMEDIATE queue on the busy timeout instead of failing when two
    readers try to upgrade to writers at the same time. Everything else
    uses a deferred BEGIN, and WAL journaling keeps open readers from
    blocking a writer's commit.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _configure_connection(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        if conn.get_execution_options().get(WRITE_LOCK_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


async def lock_for_write(session: AsyncSession) -> None:
    """Start the session's transaction holding the write lock."""
    await session.connection(execution_options={WRITE_LOCK_OPTION: True})


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Args:
        url: SQLAlchemy database URL
        echo: Log SQL statements

    Returns:
        AsyncEngine instance
    """
    engine = create_async_engine(url, echo=echo, future=True)
    if engine.dialect.name == "sqlite":
        _use_immediate_transactions(engine)
    return engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


# Create async engine
engine = build_engine(get_database_url(), echo=get_database_echo())

# Create session factory
SessionLocal = build_session_factory(engine)


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """
    Initialize database tables.

    Creates all tables defined in ORM models.

    Args:
        bind: Engine to use, defaults to the module engine
    """
    async with (bind or engine).begin() as conn:
        # Import all models to register them with Base
        from .models import MasterCommandORM, SlaveCommandORM  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized successfully")
