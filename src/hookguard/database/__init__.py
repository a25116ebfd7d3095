"""
hookguard Database Layer

Provides database models, session management and schema creation.
Supports PostgreSQL for production and SQLite for development.
"""

from .models import (
    Base,
    WebhookActivityRecord,
    RetryQueueRecord,
    AlertConfigRecord,
    AlertEventRecord,
    RateLimitCounterRecord,
    RateLimitUsageRecord,
)
from .session import DatabaseManager
from .migrations import init_database, drop_database

__all__ = [
    "Base",
    "WebhookActivityRecord",
    "RetryQueueRecord",
    "AlertConfigRecord",
    "AlertEventRecord",
    "RateLimitCounterRecord",
    "RateLimitUsageRecord",
    "DatabaseManager",
    "init_database",
    "drop_database",
]
