"""
Database Connection Module
Handles the async SQLAlchemy engine, session factory and unit of work.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from chatbot.core.config import get_settings
from chatbot.core.exceptions import StorageError

logger = logging.getLogger(__name__)
settings = get_settings()


def _engine_options(url: str) -> dict:
    """Pool sizing only applies to server databases."""
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_timeout": 2,  # Surface pool exhaustion quickly as a retryable failure
    }


engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    **_engine_options(settings.database_url),
)

# Session factory - creates new database sessions
async_session_maker = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False  # Objects remain accessible after commit
)


# Base class for all our models
class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Models must be registered on Base.metadata before create_all
    import chatbot.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created successfully")


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Scope a transaction around a block of store calls.

    Commits when the block exits normally and rolls back on every other
    exit path. Driver and constraint failures are re-raised as
    StorageError so callers deal with one retryable failure type.

    Example:
        async with unit_of_work(db):
            order = await OrderLedger(db).place(device_id)
    """
    try:
        yield session
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception(f"Transaction rolled back: {e}")
        raise StorageError("Storage operation failed") from e
    except BaseException:
        await session.rollback()
        raise


def dialect_insert(session: AsyncSession, model):
    """
    Return an INSERT construct that supports ON CONFLICT for the bound dialect.

    PostgreSQL serves production; SQLite serves tests and local runs.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise StorageError(f"Conflict-aware inserts are not supported on {dialect}")
