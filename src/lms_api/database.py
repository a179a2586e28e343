"""
Database management for the FastAPI application.

This module handles database initialization and cleanup within
the FastAPI event loop, ensuring connection pooling works correctly.
"""

import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

from lms.models import Base

logger = logging.getLogger(__name__)

# Module-level state (initialized in startup)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(database_url: str, echo: bool) -> dict:
    if database_url.startswith("sqlite"):
        return {"echo": echo}
    return {
        "poolclass": AsyncAdaptedQueuePool,
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "echo": echo,
    }


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """SQLite leaves foreign keys unenforced unless every connection opts in."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


async def init_database(database_url: str, echo: bool = False) -> None:
    """
    Initialize the database engine and session factory.

    MUST be called inside the FastAPI lifespan (startup event)
    to ensure the pool is created in the correct event loop.
    """
    global _engine, _session_factory

    _engine = create_async_engine(database_url, **_engine_options(database_url, echo))
    if database_url.startswith("sqlite"):
        enable_sqlite_foreign_keys(_engine)
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables() -> None:
    """Create missing tables. Used at local start-up and by ``lms db init``."""
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def close_database() -> None:
    """Close the database engine and release all connections."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory for creating sessions."""
    if _session_factory is None:
        raise RuntimeError(
            "Database not initialized. Call init_database() first. "
            "This should happen automatically in FastAPI lifespan."
        )
    return _session_factory
