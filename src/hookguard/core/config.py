"""
Configuration management for hookguard
"""

import os
from pathlib import Path
from typing import Optional, Dict, Any, Union
from dataclasses import dataclass, field

import yaml


@dataclass
class HookguardConfig:
    """hookguard configuration"""

    # Storage
    database_url: str = field(default_factory=lambda: os.getenv("HOOKGUARD_DATABASE_URL", "sqlite+aiosqlite:///hookguard.db"))
    query_timeout: float = field(default_factory=lambda: float(os.getenv("HOOKGUARD_QUERY_TIMEOUT", "10")))

    # Outbound delivery
    send_timeout: float = field(default_factory=lambda: float(os.getenv("HOOKGUARD_SEND_TIMEOUT", "15")))
    webhook_timeout: float = field(default_factory=lambda: float(os.getenv("HOOKGUARD_WEBHOOK_TIMEOUT", "30")))
    send_attempts: int = field(default_factory=lambda: int(os.getenv("HOOKGUARD_SEND_ATTEMPTS", "2")))

    # Retry queue
    retry_base_delay: float = field(default_factory=lambda: float(os.getenv("HOOKGUARD_RETRY_BASE_DELAY", "60")))
    retry_max_delay: float = field(default_factory=lambda: float(os.getenv("HOOKGUARD_RETRY_MAX_DELAY", "3600")))
    retry_batch_size: int = field(default_factory=lambda: int(os.getenv("HOOKGUARD_RETRY_BATCH_SIZE", "50")))
    retry_lease_seconds: float = field(default_factory=lambda: float(os.getenv("HOOKGUARD_RETRY_LEASE_SECONDS", "300")))
    default_max_retries: int = field(default_factory=lambda: int(os.getenv("HOOKGUARD_DEFAULT_MAX_RETRIES", "3")))

    # Rate limits (per tenant, per channel)
    email_rate_limit: int = field(default_factory=lambda: int(os.getenv("HOOKGUARD_EMAIL_RATE_LIMIT", "100")))
    email_rate_window: str = field(default_factory=lambda: os.getenv("HOOKGUARD_EMAIL_RATE_WINDOW", "per_hour"))
    sms_rate_limit: int = field(default_factory=lambda: int(os.getenv("HOOKGUARD_SMS_RATE_LIMIT", "50")))
    sms_rate_window: str = field(default_factory=lambda: os.getenv("HOOKGUARD_SMS_RATE_WINDOW", "per_hour"))

    # Email provider
    email_api_url: str = field(default_factory=lambda: os.getenv("HOOKGUARD_EMAIL_API_URL", "https://api.resend.com/emails"))
    email_api_key: Optional[str] = field(default_factory=lambda: os.getenv("HOOKGUARD_EMAIL_API_KEY"))
    alert_from_email: str = field(default_factory=lambda: os.getenv("HOOKGUARD_ALERT_FROM_EMAIL", "Webhook Alerts <alerts@hookguard.dev>"))

    # SMS provider
    twilio_account_sid: Optional[str] = field(default_factory=lambda: os.getenv("HOOKGUARD_TWILIO_ACCOUNT_SID"))
    twilio_auth_token: Optional[str] = field(default_factory=lambda: os.getenv("HOOKGUARD_TWILIO_AUTH_TOKEN"))
    twilio_from_number: Optional[str] = field(default_factory=lambda: os.getenv("HOOKGUARD_TWILIO_FROM_NUMBER"))

    # Service
    service_host: str = field(default_factory=lambda: os.getenv("HOOKGUARD_SERVICE_HOST", "0.0.0.0"))
    service_port: int = field(default_factory=lambda: int(os.getenv("HOOKGUARD_SERVICE_PORT", "8010")))

    # Logging and monitoring
    log_level: str = field(default_factory=lambda: os.getenv("HOOKGUARD_LOG_LEVEL", "INFO"))
    enable_metrics: bool = field(default_factory=lambda: os.getenv("HOOKGUARD_ENABLE_METRICS", "true").lower() == "true")
    debug_mode: bool = field(default_factory=lambda: os.getenv("HOOKGUARD_DEBUG", "false").lower() == "true")

    def __post_init__(self):
        """Validate configuration after initialization"""
        for name in ("query_timeout", "send_timeout", "webhook_timeout", "retry_lease_seconds"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.send_attempts < 1:
            raise ValueError("send_attempts must be at least 1")
        if self.retry_base_delay < 0:
            raise ValueError("retry_base_delay must be non-negative")
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("retry_max_delay must be >= retry_base_delay")
        if self.retry_batch_size <= 0:
            raise ValueError("retry_batch_size must be positive")
        if self.default_max_retries < 0:
            raise ValueError("default_max_retries must be non-negative")
        if self.email_rate_limit <= 0 or self.sms_rate_limit <= 0:
            raise ValueError("rate limits must be positive")
        for name in ("email_rate_window", "sms_rate_window"):
            if getattr(self, name) not in ("per_minute", "per_hour", "per_day"):
                raise ValueError(f"{name} must be one of per_minute, per_hour, per_day")
        if self.service_port <= 0 or self.service_port > 65535:
            raise ValueError("service_port must be between 1 and 65535")

    @classmethod
    def from_env(cls, **overrides) -> "HookguardConfig":
        """Create configuration from environment variables with optional overrides"""
        config = cls()

        for key, value in overrides.items():
            if not hasattr(config, key):
                raise ValueError(f"Unknown configuration key: {key}")

        if overrides:
            return config.update(**overrides)
        return config

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "HookguardConfig":
        """Create configuration from dictionary"""
        return cls(**config_dict)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "HookguardConfig":
        """Create configuration from a YAML file, falling back to env for missing keys"""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        return cls.from_env(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return {
            field.name: getattr(self, field.name)
            for field in self.__dataclass_fields__.values()
        }

    def update(self, **updates) -> "HookguardConfig":
        """Create new configuration with updates"""
        config_dict = self.to_dict()
        config_dict.update(updates)
        return self.from_dict(config_dict)

    def get(self, key: str, default=None):
        """Get configuration value by key with optional default"""
        return getattr(self, key, default)


class ConfigManager:
    """Global configuration manager"""

    _instance: Optional[HookguardConfig] = None

    @classmethod
    def get_config(cls) -> HookguardConfig:
        """Get global configuration instance"""
        if cls._instance is None:
            cls._instance = HookguardConfig.from_env()
        return cls._instance

    @classmethod
    def set_config(cls, config: HookguardConfig) -> None:
        """Set global configuration instance"""
        cls._instance = config

    @classmethod
    def reset_config(cls) -> None:
        """Reset configuration to default"""
        cls._instance = None


def get_config() -> HookguardConfig:
    """Get the global hookguard configuration"""
    return ConfigManager.get_config()


def set_config(config: HookguardConfig) -> None:
    """Set the global hookguard configuration"""
    ConfigManager.set_config(config)
