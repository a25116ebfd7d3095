"""
Schema management for hookguard
"""

from typing import Optional

import structlog

from .models import Base
from .session import DatabaseManager

logger = structlog.get_logger(__name__)


async def init_database(db_manager: Optional[DatabaseManager] = None) -> None:
    """Create every table that does not exist yet"""
    db_manager = db_manager or DatabaseManager()
    logger.info("Initializing database", database_url=db_manager.database_url)

    try:
        async with db_manager.async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise

    logger.info("Database schema created successfully")


async def drop_database(db_manager: DatabaseManager) -> None:
    """Drop all hookguard tables"""
    async with db_manager.async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.warning("Database schema dropped", database_url=db_manager.database_url)
