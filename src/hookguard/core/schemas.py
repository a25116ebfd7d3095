"""
Core data schemas for hookguard
"""

import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union, Literal, Annotated
from enum import Enum

from pydantic import BaseModel, Field, ConfigDict, model_validator


def _new_id() -> str:
    return str(uuid.uuid4())


class AttemptStatus(str, Enum):
    """Outcome of one outbound webhook call"""
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


class RetryStatus(str, Enum):
    """Retry queue entry lifecycle"""
    PENDING = "pending"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (RetryStatus.SUCCEEDED, RetryStatus.ABANDONED)


class AlertType(str, Enum):
    """Conditions the health monitor can raise"""
    ABANDONED_WEBHOOK = "abandoned_webhook"
    HIGH_FAILURE_RATE = "high_failure_rate"
    SLOW_RESPONSE_TIME = "slow_response_time"


class ServiceType(str, Enum):
    """Outbound services bounded by the rate limiter"""
    EMAIL = "email"
    SMS = "sms"
    WEBHOOK = "webhook"


class LimitWindow(str, Enum):
    """Tumbling window sizes for rate limit policies"""
    PER_MINUTE = "per_minute"
    PER_HOUR = "per_hour"
    PER_DAY = "per_day"

    @property
    def seconds(self) -> int:
        return {
            LimitWindow.PER_MINUTE: 60,
            LimitWindow.PER_HOUR: 3600,
            LimitWindow.PER_DAY: 86400,
        }[self]


class DispatchStatus(str, Enum):
    """Result of handing one alert batch to the dispatcher"""
    SENT = "sent"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


class ConfigOutcome(str, Enum):
    """How the evaluation of a single alert config ended"""
    DISABLED = "disabled"
    COOLDOWN = "cooldown"
    INSUFFICIENT_SAMPLES = "insufficient_samples"
    NO_ALERTS = "no_alerts"
    SENT = "sent"
    RATE_LIMITED = "rate_limited"
    SEND_FAILED = "send_failed"
    ERROR = "error"


class WebhookAttempt(BaseModel):
    """One outbound webhook call attempt (append-only)"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    tenant_id: str
    webhook_name: str = Field(..., description="Logical webhook identifier, not unique")
    url: str
    status: AttemptStatus
    duration_ms: Optional[int] = Field(None, ge=0, description="Absent when the call timed out")
    triggered_at: datetime
    error_message: Optional[str] = None

    @property
    def is_failure(self) -> bool:
        return self.status in (AttemptStatus.FAILED, AttemptStatus.TIMEOUT)


class RetryQueueEntry(BaseModel):
    """A webhook delivery waiting to be re-attempted"""

    id: str = Field(default_factory=_new_id)
    tenant_id: str
    webhook_name: str
    url: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    status: RetryStatus = RetryStatus.PENDING
    last_error: Optional[str] = None
    next_retry_at: datetime
    created_at: datetime
    updated_at: datetime
    claimed_until: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_retry_budget(self) -> "RetryQueueEntry":
        if self.retry_count > self.max_retries:
            raise ValueError("retry_count cannot exceed max_retries")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_due(self, now: datetime) -> bool:
        return (
            self.status in (RetryStatus.PENDING, RetryStatus.RETRYING)
            and self.next_retry_at <= now
        )

    def is_claimed(self, now: datetime) -> bool:
        return self.claimed_until is not None and self.claimed_until > now


class AlertConfig(BaseModel):
    """Per-tenant webhook health alerting configuration"""

    id: str = Field(default_factory=_new_id)
    tenant_id: str
    enabled: bool = True
    alert_recipients: List[str] = Field(default_factory=list)
    notification_channel: ServiceType = ServiceType.EMAIL
    failure_rate_threshold: float = Field(default=30, ge=0, le=100, description="Percent")
    response_time_threshold: int = Field(default=5000, ge=0, description="Milliseconds")
    check_window_hours: float = Field(default=1, gt=0)
    min_calls_required: int = Field(default=5, ge=1)
    cooldown_hours: float = Field(default=2, ge=0)
    last_alert_sent_at: Optional[datetime] = None

    def window_start(self, now: datetime) -> datetime:
        return now - timedelta(hours=self.check_window_hours)

    def cooldown_ends_at(self) -> Optional[datetime]:
        if self.last_alert_sent_at is None:
            return None
        return self.last_alert_sent_at + timedelta(hours=self.cooldown_hours)

    def in_cooldown(self, now: datetime) -> bool:
        ends_at = self.cooldown_ends_at()
        return ends_at is not None and now < ends_at


class AbandonedWebhookDetails(BaseModel):
    webhook_url: str
    retry_count: int
    last_error: Optional[str] = None
    abandoned_at: datetime


class FailureRateDetails(BaseModel):
    failure_rate: float
    total_calls: int
    failed_calls: int
    threshold: float
    window_hours: float


class ResponseTimeDetails(BaseModel):
    avg_response_time: int
    threshold: int
    calls_analyzed: int
    window_hours: float


class AbandonedWebhookAlert(BaseModel):
    alert_type: Literal["abandoned_webhook"] = "abandoned_webhook"
    webhook_name: Optional[str] = None
    details: AbandonedWebhookDetails


class HighFailureRateAlert(BaseModel):
    alert_type: Literal["high_failure_rate"] = "high_failure_rate"
    webhook_name: Optional[str] = None
    details: FailureRateDetails


class SlowResponseTimeAlert(BaseModel):
    alert_type: Literal["slow_response_time"] = "slow_response_time"
    webhook_name: Optional[str] = None
    details: ResponseTimeDetails


Alert = Annotated[
    Union[AbandonedWebhookAlert, HighFailureRateAlert, SlowResponseTimeAlert],
    Field(discriminator="alert_type"),
]


class AlertEvent(BaseModel):
    """Audit record of one triggered condition that was delivered"""

    id: str = Field(default_factory=_new_id)
    config_id: str
    tenant_id: str
    alert_type: AlertType
    webhook_name: Optional[str] = None
    alert_details: Dict[str, Any] = Field(default_factory=dict)
    alert_sent_to: List[str] = Field(default_factory=list)
    triggered_at: datetime

    @classmethod
    def from_alert(cls, config: AlertConfig, alert: Alert, triggered_at: datetime) -> "AlertEvent":
        return cls(
            config_id=config.id,
            tenant_id=config.tenant_id,
            alert_type=alert.alert_type,
            webhook_name=alert.webhook_name,
            alert_details=alert.details.model_dump(mode="json"),
            alert_sent_to=list(config.alert_recipients),
            triggered_at=triggered_at,
        )


class RateLimitCounter(BaseModel):
    """Usage counter for one (service, tenant, window)"""

    service_type: str
    tenant_id: str
    window_start: datetime
    count: int = Field(default=0, ge=0)
    max_allowed: int = Field(..., gt=0)


class RateLimitStatus(BaseModel):
    """Answer from the rate limiter; max_allowed is None when unlimited"""

    allowed: bool
    current_count: int = 0
    max_allowed: Optional[int] = None
    window_start: Optional[datetime] = None


class RateLimitUsage(BaseModel):
    """Usage log line for one gated send"""

    id: str = Field(default_factory=_new_id)
    service_type: str
    tenant_id: str
    success: bool
    rate_limited: bool = False
    recorded_at: datetime


class SendResult(BaseModel):
    """Result reported by a notification channel"""

    ok: bool
    provider_ref: Optional[str] = None
    error: Optional[str] = None


class DispatchResult(BaseModel):
    """What the dispatcher did with one alert batch"""

    status: DispatchStatus
    alerts_sent: int = 0
    provider_ref: Optional[str] = None
    error: Optional[str] = None


class ConfigResult(BaseModel):
    """Per-config line in a health-check summary"""

    config_id: str
    tenant_id: str
    outcome: ConfigOutcome
    alerts_triggered: int = 0
    alerts_sent: int = 0
    stage: Optional[str] = None
    error: Optional[str] = None


class HealthCheckSummary(BaseModel):
    """Result of one health-check pass"""

    configs_checked: int = 0
    alerts_sent: int = 0
    results: List[ConfigResult] = Field(default_factory=list)


class RetrySummary(BaseModel):
    """Result of one retry executor pass"""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    abandoned: int = 0
    deferred: int = 0
