"""
hookguard - webhook retry and health alerting

Retries failed webhook deliveries with bounded backoff, watches webhook
health per tenant, and sends rate-limited alert notifications.
"""

__version__ = "1.0.0"

from .core.config import HookguardConfig, get_config, set_config
from .core.schemas import (
    AlertConfig,
    AlertEvent,
    AlertType,
    HealthCheckSummary,
    RetryQueueEntry,
    RetryStatus,
    RetrySummary,
    ServiceType,
    WebhookAttempt,
)
from .core.retry_queue import BackoffPolicy, RetryQueueManager
from .core.rate_limiter import RateLimitPolicy, RateLimiter
from .core.health_monitor import HealthMonitor
from .core.alert_dispatcher import AlertDispatcher
from .core.retry_executor import RetryExecutor
from .exceptions.base import HookguardError

__all__ = [
    "__version__",
    "HookguardConfig",
    "get_config",
    "set_config",
    "AlertConfig",
    "AlertEvent",
    "AlertType",
    "HealthCheckSummary",
    "RetryQueueEntry",
    "RetryStatus",
    "RetrySummary",
    "ServiceType",
    "WebhookAttempt",
    "BackoffPolicy",
    "RetryQueueManager",
    "RateLimitPolicy",
    "RateLimiter",
    "HealthMonitor",
    "AlertDispatcher",
    "RetryExecutor",
    "HookguardError",
]
