"""
Database connection management.

One engine and one session factory per process, created by ``init_db`` at
the API or sweeper entry point. Record stores may also be handed their own
session factory (tests bind one to a throwaway engine).
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from entryflow.config import Settings, get_settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(settings: Settings) -> dict[str, Any]:
    """
    Keyword arguments for ``create_async_engine``.

    SQLite (used for local demos) has no connection pool to size, so the
    pool options only apply to server databases.
    """
    options: dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if make_url(settings.database_url).get_backend_name() != "sqlite":
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
        )
    return options


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """
    Get or create the process-wide async engine.

    Args:
        settings: Database settings. Defaults to the cached settings.

    Returns:
        AsyncEngine: The SQLAlchemy async engine instance.
    """
    global _engine
    if _engine is None:
        settings = settings or get_settings()
        _engine = create_async_engine(settings.database_url, **engine_options(settings))
    return _engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(settings: Settings | None = None) -> None:
    """Create the engine and the process-wide session factory."""
    global _session_factory
    _session_factory = make_session_factory(get_engine(settings))
    logger.info("Database connection initialized")


async def close_db() -> None:
    """Dispose of the engine, if one was created."""
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database connection closed")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get the process-wide session factory.

    Raises:
        RuntimeError: If ``init_db`` has not run.
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """
    Open a session that commits on success and rolls back on error.

    Yields:
        AsyncSession: An async database session.
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
