"""
Database connection management with SQLAlchemy async engine.

This module provides async database connection management using SQLAlchemy 2.0
with connection pooling and a FastAPI dependency that hands one session to
each request.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from marketplace.core.config import get_settings
from marketplace.core.logging import get_logger

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _convert_database_url_to_async(url: str) -> str:
    """
    Convert PostgreSQL URL to async format.

    Args:
        url: Database connection URL

    Returns:
        Async-compatible database URL with asyncpg driver
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def create_engine() -> AsyncEngine:
    """
    Create async SQLAlchemy engine with connection pooling.

    Returns:
        Configured async SQLAlchemy engine
    """
    settings = get_settings()
    database_url = _convert_database_url_to_async(settings.database_url)

    if settings.environment == "test":
        engine = create_async_engine(
            database_url,
            echo=settings.debug,
            poolclass=NullPool,
        )
    else:
        engine = create_async_engine(
            database_url,
            echo=settings.debug,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
            connect_args={
                "server_settings": {"application_name": settings.app_name},
                "command_timeout": 60,
                "timeout": 10,
            },
        )

    logger.info(
        "Database engine created",
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        environment=settings.environment,
    )

    return engine


def get_engine() -> AsyncEngine:
    """
    Get or create the global async database engine.

    Raises:
        RuntimeError: If engine initialization fails
    """
    global _engine

    if _engine is None:
        try:
            _engine = create_engine()
        except Exception as e:
            logger.error(
                "Failed to create database engine",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RuntimeError(f"Database engine initialization failed: {e}") from e

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the global session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database session factory created")

    return _session_factory


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create async database session with automatic cleanup.

    Commits on normal exit and rolls back anything still pending when the
    block raises. Writes the order workflow has already committed stay
    committed.

    Yields:
        Async database session
    """
    session = get_session_factory()()

    try:
        yield session
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(
            "Database session rolled back",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database session injection.

    Example:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with get_db_session() as session:
        yield session


async def dispose_engine() -> None:
    """Dispose the global engine on application shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None
