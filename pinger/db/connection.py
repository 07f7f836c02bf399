"""
Database connection management.
Handles async SQLAlchemy engine and session creation.
"""

import logging
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

from pinger.config import Settings
from pinger.db.models import Base

logger = logging.getLogger(__name__)


class Database:
    """
    Owns the async engine and session factory for one connection string.

    Created once by the composition root and passed to the components that
    need it.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._sessionmaker = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """
        Create the database from application settings.

        Args:
            settings: The application settings.

        Returns:
            Database: The database wrapper.
        """
        url = settings.app_settings.connection_string
        options: dict = {
            "echo": settings.log_level.upper() == "DEBUG",
            "pool_pre_ping": True,
        }
        if not url.startswith("sqlite"):
            options["pool_size"] = settings.app_settings.database_pool_size
            options["max_overflow"] = settings.app_settings.database_max_overflow
        return cls(create_async_engine(url, **options))

    @classmethod
    def for_tests(cls, database_url: str) -> "Database":
        """
        Create a test database with NullPool.

        Args:
            database_url: The database URL for testing.
        """
        return cls(create_async_engine(database_url, poolclass=NullPool, echo=False))

    async def create_all(self) -> None:
        """Create all tables. Used for tests and local development."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def ping(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.warning("Database ping failed", exc_info=True)
            return False

    async def dispose(self) -> None:
        """
        Close the database connection.
        Should be called on application shutdown.
        """
        await self.engine.dispose()
        logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession]:
        """
        Context manager for getting async database sessions.

        Commits on success and rolls back on error.

        Yields:
            AsyncSession: An async database session.
        """
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
