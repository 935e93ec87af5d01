# src/arcstats/db/session.py

"""Database session management."""
import logging
import os
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from arcstats.db.models import Base

logger = logging.getLogger(__name__)

# Database URL from environment variable with SQLite fallback for development
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./arcstats.db")


def _create_engine():
    """Create the async engine with appropriate configuration.

    SQLite doesn't support connection pooling, so we only configure
    pool settings for other databases like PostgreSQL.
    """
    url = DATABASE_URL

    # SQLite doesn't support connection pooling
    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=os.getenv("DB_ECHO", "false").lower() == "true",
        )

    return create_async_engine(
        url,
        pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "5")),
        pool_pre_ping=True,
        pool_recycle=int(os.getenv("DB_POOL_RECYCLE", "3600")),
        echo=os.getenv("DB_ECHO", "false").lower() == "true",
    )


engine = _create_engine()

# autoflush=False: the recompute controller flushes explicitly per stage.
# expire_on_commit=False: objects remain accessible after commit.
AsyncSessionLocal = async_sessionmaker(
    bind=engine, autoflush=False, expire_on_commit=False
)


async def init_models() -> None:
    """Create any missing tables; existing tables are left untouched."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured", extra={"url": engine.url.render_as_string()})


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that provides an async database session.

    Automatically handles rollback on exceptions and ensures
    the session is properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Database session error, rolling back: {e}")
            await session.rollback()
            raise
