"""Async database session management for SQLAlchemy 2.0+.

Production deployments use PostgreSQL with asyncpg; development and tests
use SQLite through aiosqlite.
"""

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from bytegate.app.core.config import settings
from bytegate.app.core.logging import get_logger

logger = get_logger(__name__)

# Global session maker instance
_AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


@lru_cache(maxsize=1)
def get_async_engine(database_url: str | None = None) -> AsyncEngine:
    """Get or create the async database engine (thread-safe singleton).

    Args:
        database_url: Optional database URL. Uses settings if not provided.

    Returns:
        AsyncEngine instance
    """
    url = database_url or settings.database_url

    if "sqlite" in url.lower():
        engine = create_async_engine(url, echo=False)
        logger.info("Created SQLite async engine")
    else:
        engine = create_async_engine(
            url,
            echo=False,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            pool_pre_ping=True,
        )
        logger.info(
            f"Created async engine (pool_size={settings.db_pool_size}, "
            f"max_overflow={settings.db_max_overflow})"
        )
    return engine


def get_async_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the async session maker bound to the shared engine."""
    global _AsyncSessionLocal
    if _AsyncSessionLocal is None:
        _AsyncSessionLocal = async_sessionmaker(
            bind=get_async_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _AsyncSessionLocal


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Async context manager for database sessions.

    Usage:
        async with get_async_session() as session:
            result = await session.execute(...)
    """
    session_maker = get_async_session_maker()
    async with session_maker() as session:
        yield session


async def init_async_db() -> None:
    """Create all tables. Called on application startup."""
    from bytegate.app.db import models  # noqa: F401 - register models
    from bytegate.app.db.base import Base

    engine = get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_async_engine() -> None:
    """Dispose the async engine. Called on application shutdown."""
    global _AsyncSessionLocal

    engine = get_async_engine()
    try:
        await engine.dispose()
        logger.debug("Async engine disposed successfully")
    except RuntimeError:
        # Event loop mismatch - connection already closed or different loop
        logger.debug("Engine dispose encountered RuntimeError (event loop mismatch)")

    get_async_engine.cache_clear()
    _AsyncSessionLocal = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    Transaction handling:
    - Successful requests: changes are committed
    - Exceptions: changes are rolled back, exception is re-raised
    """
    async with get_async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Type alias for FastAPI dependency injection
SessionDep = Annotated[AsyncSession, Depends(get_db)]
