"""
Database connection and session management.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite gets no pool tuning; an in-memory SQLite database is pinned to
    a single shared connection so every session sees the same data.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        engine_kwargs: dict = {"echo": echo}
        if url.database in (None, "", ":memory:"):
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        return create_async_engine(database_url, **engine_kwargs)

    from shareaudit.config import get_settings

    db_settings = get_settings().database
    logger.info(
        "Initializing database connection pool: pool_size=%d, max_overflow=%d, "
        "pool_recycle=%ds, pool_pre_ping=%s",
        db_settings.pool_size,
        db_settings.max_overflow,
        db_settings.pool_recycle,
        db_settings.pool_pre_ping,
    )
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=db_settings.pool_size,
        max_overflow=db_settings.max_overflow,
        pool_recycle=db_settings.pool_recycle,
        pool_pre_ping=db_settings.pool_pre_ping,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(database_url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """
    Initialize the global database connection.

    Args:
        database_url: SQLAlchemy async URL. Defaults to the configured
            SHAREAUDIT_DATABASE__URL.
    """
    global _engine, _session_factory

    from shareaudit.config import get_settings

    settings = get_settings()
    url = database_url or settings.database.url

    _engine = build_engine(url, echo=settings.database.echo)
    _session_factory = build_session_factory(_engine)
    return _session_factory


async def create_tables(engine: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet."""
    # Register models on the metadata
    from shareaudit import models  # noqa: F401

    engine = engine or _engine
    if engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def close_db() -> None:
    """Close database connection."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
    _session_factory = None


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Open a session that commits on success and rolls back on error."""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:  # Intentionally broad: must rollback on any error before re-raising
            logger.debug("Session error, rolling back: %s", e)
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """Get a session from the global factory as a context manager."""
    async with session_scope(get_session_factory()) as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the global session factory."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine
