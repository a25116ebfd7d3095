"""
Base exceptions for hookguard
"""

from typing import Optional, Dict, Any


class HookguardError(Exception):
    """Base exception for all hookguard errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class ConfigurationError(HookguardError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str = "Configuration error",
        config_key: Optional[str] = None
    ):
        super().__init__(message, "CONFIGURATION_ERROR")
        self.config_key = config_key


class ValidationError(HookguardError):
    """Raised when data validation fails"""

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        value: Optional[Any] = None
    ):
        super().__init__(message, "VALIDATION_FAILED")
        self.field = field
        self.value = value


class StoreError(HookguardError):
    """Raised when a backing store cannot be read or written"""

    def __init__(
        self,
        message: str = "Store operation failed",
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message, "STORE_ERROR", {"operation": operation})
        self.operation = operation
        self.original_error = original_error


class EntryNotFoundError(HookguardError):
    """Raised when a retry queue entry does not exist"""

    def __init__(
        self,
        message: str = "Retry queue entry not found",
        entry_id: Optional[str] = None
    ):
        super().__init__(message, "ENTRY_NOT_FOUND")
        self.entry_id = entry_id


class ChannelError(HookguardError):
    """Raised when a notification channel cannot deliver a message"""

    def __init__(
        self,
        message: str = "Notification delivery failed",
        channel: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message, "CHANNEL_ERROR")
        self.channel = channel
        self.original_error = original_error


class DispatchError(HookguardError):
    """Raised when an alert batch cannot be dispatched for a config"""

    def __init__(
        self,
        message: str = "Alert dispatch failed",
        config_id: Optional[str] = None
    ):
        super().__init__(message, "DISPATCH_FAILED")
        self.config_id = config_id


class TimeoutError(HookguardError):
    """Raised when operations timeout"""

    def __init__(
        self,
        message: str = "Operation timed out",
        timeout_seconds: Optional[float] = None
    ):
        super().__init__(message, "TIMEOUT")
        self.timeout_seconds = timeout_seconds
