"""
Guardian Shield - Database connection.

Async SQLAlchemy engine and session factory for the catalog of clients,
systems, equipment and protocols. All reads and writes go through the
get_async_session() context manager, which rolls back on any error.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from shared.config import get_settings

settings = get_settings()

# Engine creation does not connect; the first session does
engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_size=5,
    max_overflow=10,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,  # Records are converted after commit
    autoflush=False,
)


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for database sessions.

    Usage:
        async with get_async_session() as session:
            result = await session.execute(select(Equipment))
            equipments = result.scalars().all()
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def check_connection() -> None:
    """Run SELECT 1; raises the driver error when PostgreSQL is unreachable."""
    async with get_async_session() as session:
        await session.execute(text("SELECT 1"))


async def close_db() -> None:
    """Dispose the engine and its pooled connections (application shutdown)."""
    await engine.dispose()
