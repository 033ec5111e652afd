"""Database configuration and session management."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from wotc_relay.config.settings import Settings, get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """Create an async engine from settings.

    SQLite URLs skip pool sizing, which only applies to server databases.
    """
    settings = settings or get_settings()
    if settings.DATABASE_URL.startswith("sqlite"):
        return create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG)

    if settings.ENVIRONMENT == "test":
        return create_async_engine(
            settings.DATABASE_URL, echo=settings.DEBUG, poolclass=NullPool
        )
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
    )


def get_engine() -> AsyncEngine:
    """Get the shared engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the shared session factory, creating it on first use."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def init_db() -> None:
    """Verify database connectivity.

    Called during application startup so a bad DATABASE_URL fails fast.
    """
    async with get_engine().begin() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    """Dispose of the shared engine and forget the session factory."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for obtaining a database session.

    Use this outside of FastAPI dependency injection, such as in the
    dispatch loop or the capture scheduler.

    Usage:
        async with get_async_session() as session:
            result = await session.execute(query)
    """
    async with get_session_factory()() as session:
        yield session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for FastAPI to inject database sessions."""
    async with get_session_factory()() as session:
        yield session
