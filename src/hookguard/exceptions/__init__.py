"""
hookguard exceptions
"""

from .base import (
    HookguardError,
    ConfigurationError,
    ValidationError,
    StoreError,
    EntryNotFoundError,
    ChannelError,
    DispatchError,
    TimeoutError,
)

__all__ = [
    "HookguardError",
    "ConfigurationError",
    "ValidationError",
    "StoreError",
    "EntryNotFoundError",
    "ChannelError",
    "DispatchError",
    "TimeoutError",
]
