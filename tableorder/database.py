"""
Database Connection Module
Handles the SQLAlchemy async engine (PostgreSQL via psycopg in deployment).
"""

import logging
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from tableorder.core.config import get_settings

logger = logging.getLogger(__name__)


def create_engine_from_url(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for ``url``.

    SQLite gets the driver's default pool; server databases get a sized pool.
    """
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        echo=echo,
        pool_size=5,  # Connection pool size
        max_overflow=10,  # Extra connections when pool is full
        pool_pre_ping=True,
    )


def create_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,  # Objects remain accessible after commit
    )


_settings = get_settings()

engine = create_engine_from_url(_settings.database_url, echo=_settings.database_echo)

# Session factory - creates new database sessions
async_session_maker = create_session_maker(engine)


# Base class for all our models
class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = engine) -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Models must be registered on Base.metadata before create_all
    import tableorder.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")
