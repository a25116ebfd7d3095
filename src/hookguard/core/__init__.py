"""
Core components of the webhook reliability pipeline
"""

from .config import HookguardConfig, ConfigManager, get_config, set_config
from .retry_queue import BackoffPolicy, RetryQueueManager
from .rate_limiter import RateLimitPolicy, RateLimiter, policies_from_config
from .health_monitor import HealthMonitor
from .alert_dispatcher import AlertDispatcher
from .retry_executor import RetryExecutor

__all__ = [
    "HookguardConfig",
    "ConfigManager",
    "get_config",
    "set_config",
    "BackoffPolicy",
    "RetryQueueManager",
    "RateLimitPolicy",
    "RateLimiter",
    "policies_from_config",
    "HealthMonitor",
    "AlertDispatcher",
    "RetryExecutor",
]
