"""
Database Session Management

Provides the async engine and session factory backing the credential store.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from strava_monthly.config import settings


def _get_async_url(url: str) -> str:
    """Convert sync database URL to async version."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///")
    elif url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://")
    return url


def create_engine_for(database_url: Optional[str] = None) -> AsyncEngine:
    """Create an async engine for the given (sync or async) database URL."""
    async_url = _get_async_url(database_url or settings.database_url)

    if async_url.startswith("sqlite"):
        return create_async_engine(
            async_url,
            connect_args={"check_same_thread": False}
        )
    return create_async_engine(async_url)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Async session factory bound to engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


# =============================================================================
# Initialization
# =============================================================================

async def init_db(engine: AsyncEngine) -> None:
    """Create tables for all registered models."""
    from strava_monthly.models.base import Base
    # Import all models to register them
    from strava_monthly.features.strava import models  # noqa

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
