"""
Store interfaces and implementations
"""

from .base import ActivityLog, RetryQueueStore, AlertConfigStore, AlertEventStore, RateLimitStore
from .memory import (
    InMemoryActivityLog,
    InMemoryRetryQueueStore,
    InMemoryAlertConfigStore,
    InMemoryAlertEventStore,
    InMemoryRateLimitStore,
)

__all__ = [
    "ActivityLog",
    "RetryQueueStore",
    "AlertConfigStore",
    "AlertEventStore",
    "RateLimitStore",
    "InMemoryActivityLog",
    "InMemoryRetryQueueStore",
    "InMemoryAlertConfigStore",
    "InMemoryAlertEventStore",
    "InMemoryRateLimitStore",
]
