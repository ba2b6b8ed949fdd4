"""
Database Session Management

Creates the async engine and session factory shared by the whole service.

- engine: the pooled AsyncEngine (asyncpg in production)
- AsyncSessionLocal: session factory for service-owned tables (audit log)
- get_db(): FastAPI dependency yielding one session per request
- init_db() / close_db(): lifespan hooks

Business tables are not accessed through sessions: the table-access backend
works on the engine directly with SQLAlchemy Core.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from datenassistent.config.settings import settings
from datenassistent.core.logging import logger
from datenassistent.models.base import Base


def create_engine_from_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, applying pool settings where the dialect supports them."""
    kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
        kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
    return create_async_engine(database_url, **kwargs)


engine = create_engine_from_url(settings.DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request.

    Commits on success, rolls back on exception, always closes.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def check_db_connection(db_engine: AsyncEngine | None = None) -> bool:
    """Run SELECT 1 against the database."""
    try:
        async with (db_engine or engine).connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database ping failed", error_type=type(e).__name__, error=str(e))
        return False


async def init_db() -> None:
    """Verify connectivity and create the audit table when persisting audits."""
    logger.info("Initializing database connection")
    if not await check_db_connection():
        logger.warning("Database not reachable at startup")
        return

    if settings.AUDIT_LOG_TO_DATABASE:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Audit table ensured")


async def close_db() -> None:
    """Dispose of the connection pool."""
    await engine.dispose()
    logger.info("Database connections closed")
