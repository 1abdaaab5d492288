"""Async SQLAlchemy engine and session factory for the system of record."""
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.config import Settings
from models.base import Base


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine. Pool sizing only applies to server databases."""
    if settings.database_url.startswith("sqlite"):
        return create_async_engine(settings.database_url, echo=False)
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Return the session factory used by services.

    Services open one session per unit of work and commit or roll back themselves;
    nothing here commits implicitly.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet (development and tests)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
