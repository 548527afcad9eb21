"""
Database engine and session management.

The engine is created lazily so that importing models never opens a pool.
Services receive an explicit AsyncSession; nothing in the forum core reaches
for module state.
"""

from typing import AsyncGenerator

from loguru import logger
from sqlalchemy import Insert, Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from forum_engine.core.config import settings
from forum_engine.core.exceptions import StorageError


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""


_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Get (or create) the application engine."""
    global _engine

    if _engine is None:
        _engine = create_async_engine(
            str(settings.database_url),
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
        )
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get session factory bound to the application engine."""
    global _session_maker

    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_maker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a request-scoped session.

    Pending work is committed when the request succeeds and rolled back
    otherwise, including on client disconnect.
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create tables that do not exist yet."""
    # Register mappers on Base.metadata
    from forum_engine.models import forum, user  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured")


async def close_db() -> None:
    """Dispose the application engine."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _session_maker = None


_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_ignoring_duplicates(db: AsyncSession, table: Table) -> Insert:
    """
    Build an INSERT that skips rows violating a unique constraint.

    The result's rowcount is 1 when the row was written and 0 when an
    existing row already held its key.
    """
    dialect = db.get_bind().dialect.name
    try:
        insert = _INSERT_BY_DIALECT[dialect]
    except KeyError:
        raise StorageError(f"Conflict-ignoring inserts are not supported on {dialect}") from None
    return insert(table).on_conflict_do_nothing()
