"""Async database session management for the audit store.

Uses SQLAlchemy 2.0 async engines. SQLite (via aiosqlite) is accepted for
local runs and tests; any async driver URL works in production.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from guard.app.core.config import settings
from guard.app.core.logging import get_logger
from guard.app.db.base import Base

logger = get_logger(__name__)


def create_audit_engine(database_url: str | None = None) -> AsyncEngine:
    """Create the async engine for the audit database.

    Args:
        database_url: Optional database URL. Uses settings if not provided.

    Returns:
        AsyncEngine instance
    """
    url = database_url or settings.audit_database_url
    if not url:
        raise ValueError("AUDIT_DATABASE_URL is not configured")

    if ":memory:" in url:
        # Every connection would otherwise see its own empty database
        engine = create_async_engine(url, poolclass=StaticPool)
    else:
        engine = create_async_engine(url, pool_pre_ping=True)
    logger.info(f"Created audit engine ({engine.dialect.name})")
    return engine


def create_audit_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session maker bound to the audit engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_audit_db(engine: AsyncEngine) -> None:
    """Create the audit tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
