"""
Shared fixtures for hookguard tests
"""

from datetime import datetime, timedelta
from typing import List, Optional

import pytest

from hookguard.core.alert_dispatcher import AlertDispatcher
from hookguard.core.health_monitor import HealthMonitor
from hookguard.core.rate_limiter import RateLimitPolicy, RateLimiter
from hookguard.core.retry_queue import BackoffPolicy, RetryQueueManager
from hookguard.core.schemas import (
    AlertConfig,
    AttemptStatus,
    LimitWindow,
    SendResult,
    ServiceType,
    WebhookAttempt,
)
from hookguard.exceptions.base import ChannelError
from hookguard.stores.memory import (
    InMemoryActivityLog,
    InMemoryAlertConfigStore,
    InMemoryAlertEventStore,
    InMemoryRateLimitStore,
    InMemoryRetryQueueStore,
)

NOW = datetime(2024, 5, 1, 12, 30, 0)
TENANT = "clinic-1"


class FakeChannel:
    """Records every message; can be told to fail or raise"""

    def __init__(self, service_type: ServiceType = ServiceType.EMAIL, ok: bool = True, raises: bool = False):
        self.service_type = service_type
        self.ok = ok
        self.raises = raises
        self.sent: List[dict] = []

    async def send(self, recipients: List[str], subject: str, body: str) -> SendResult:
        if self.raises:
            raise ChannelError("provider unreachable", channel=self.service_type.value)
        self.sent.append({"recipients": list(recipients), "subject": subject, "body": body})
        if not self.ok:
            return SendResult(ok=False, error="HTTP 500: boom")
        return SendResult(ok=True, provider_ref=f"msg-{len(self.sent)}")


def make_attempts(
    count: int,
    failed: int = 0,
    webhook_name: str = "intake-sync",
    tenant_id: str = TENANT,
    duration_ms: Optional[int] = 200,
    at: datetime = NOW - timedelta(minutes=10),
) -> List[WebhookAttempt]:
    """``count`` attempts of which the first ``failed`` failed"""
    return [
        WebhookAttempt(
            tenant_id=tenant_id,
            webhook_name=webhook_name,
            url=f"https://hooks.example.com/{webhook_name}",
            status=AttemptStatus.FAILED if i < failed else AttemptStatus.SUCCESS,
            duration_ms=duration_ms,
            triggered_at=at,
        )
        for i in range(count)
    ]


@pytest.fixture
def activity_log():
    return InMemoryActivityLog()


@pytest.fixture
def retry_store():
    return InMemoryRetryQueueStore()


@pytest.fixture
def config_store():
    return InMemoryAlertConfigStore()


@pytest.fixture
def event_store():
    return InMemoryAlertEventStore()


@pytest.fixture
def rate_limit_store():
    return InMemoryRateLimitStore()


@pytest.fixture
def email_channel():
    return FakeChannel(ServiceType.EMAIL)


@pytest.fixture
def rate_limiter(rate_limit_store):
    return RateLimiter(
        rate_limit_store,
        [RateLimitPolicy(service_type="email", window=LimitWindow.PER_HOUR, max_allowed=100)],
    )


@pytest.fixture
def retry_queue(retry_store):
    return RetryQueueManager(retry_store, BackoffPolicy(base_seconds=60, max_seconds=3600))


@pytest.fixture
def dispatcher(email_channel, rate_limiter, event_store, config_store):
    return AlertDispatcher(
        {ServiceType.EMAIL: email_channel},
        rate_limiter,
        event_store,
        config_store,
    )


@pytest.fixture
def monitor(activity_log, retry_store, config_store, dispatcher):
    return HealthMonitor(activity_log, retry_store, config_store, dispatcher)


@pytest.fixture
def alert_config(config_store):
    config = AlertConfig(
        id="cfg-1",
        tenant_id=TENANT,
        alert_recipients=["ops@clinic.example", "lead@clinic.example"],
    )
    config_store.add(config)
    return config
