"""
Database Session Management for hookguard

Provides connection management, session handling, and database utilities.
"""

from contextlib import asynccontextmanager
from typing import Optional, AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
import structlog

from ..core.config import HookguardConfig

logger = structlog.get_logger(__name__)


def to_async_url(database_url: str) -> str:
    """Map a sync driver URL onto its async driver"""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


class DatabaseManager:
    """
    Database connection and session manager.

    Supports both SQLite (development, tests) and PostgreSQL (production).
    """

    def __init__(self, config: Optional[HookguardConfig] = None, database_url: Optional[str] = None):
        from ..core.config import get_config
        self.config = config or get_config()
        self.database_url = to_async_url(database_url or self.config.database_url)

        self._async_engine = None
        self._async_session_factory = None

        self._initialize_engine()

    def _initialize_engine(self):
        url = self.database_url

        if url.startswith("postgresql"):
            self._async_engine = create_async_engine(
                url,
                pool_pre_ping=True,
                echo=self.config.debug_mode,
                pool_recycle=3600,
                connect_args={"server_settings": {"jit": "off"}, "command_timeout": 60},
            )
        elif ":memory:" in url:
            # one shared connection, otherwise every session sees an empty database
            self._async_engine = create_async_engine(
                url,
                echo=self.config.debug_mode,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            self._async_engine = create_async_engine(url, echo=self.config.debug_mode)

        self._async_session_factory = async_sessionmaker(
            bind=self._async_engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        logger.info("Database engine initialized",
                    database_type="postgresql" if url.startswith("postgresql") else "sqlite")

    @property
    def async_engine(self):
        """Get async database engine"""
        return self._async_engine

    @asynccontextmanager
    async def get_async_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get async database session; commits on success, rolls back on error"""
        async with self._async_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self):
        """Close database connections"""
        if self._async_engine:
            await self._async_engine.dispose()

        logger.info("Database connections closed")

    async def test_connection(self) -> bool:
        """Test database connectivity"""
        try:
            async with self.get_async_session() as session:
                await session.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.error("Database connection test failed", error=str(e))
            return False
