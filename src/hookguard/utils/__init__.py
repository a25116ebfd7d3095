"""
Utility modules for hookguard
"""

from .logging import setup_logging
from .metrics import MetricsCollector, get_metrics

__all__ = [
    "setup_logging",
    "MetricsCollector",
    "get_metrics",
]
