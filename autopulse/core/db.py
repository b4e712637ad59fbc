"""Database module with async SQLAlchemy engine and session management.

The engine is owned by a ``Database`` instance created once at process start
and handed to whatever needs it; nothing here connects at import time.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .settings import Settings

# SQLAlchemy base for models
Base = declarative_base()


class Database:
    """Owns the async engine and session factory for one process."""

    def __init__(self, settings: Settings, engine: Optional[AsyncEngine] = None):
        self.settings = settings
        self.engine = engine or create_async_engine(
            settings.db_url,
            echo=settings.debug,
            pool_pre_ping=True,
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Open a session scoped to the caller's block."""
        async with self.session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

    async def ping(self) -> None:
        """Test the connection."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_all(self) -> None:
        """Create all tables in the database."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
