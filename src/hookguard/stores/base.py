"""
Store interfaces consumed by the reliability pipeline.

Every boundary takes ``tenant_id`` explicitly; nothing here reads ambient
session state. Implementations must keep mutations single-row so a crash
mid-pass leaves every store consistent.
"""

from datetime import datetime
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from ..core.schemas import (
    AlertConfig,
    AlertEvent,
    RateLimitUsage,
    RetryQueueEntry,
    WebhookAttempt,
)


@runtime_checkable
class ActivityLog(Protocol):
    """Append-only record of webhook call attempts"""

    async def append(self, attempt: WebhookAttempt) -> WebhookAttempt: ...

    async def query(self, tenant_id: str, since: datetime) -> List[WebhookAttempt]: ...


@runtime_checkable
class RetryQueueStore(Protocol):
    """Persistence for retry queue entries"""

    async def insert(self, entry: RetryQueueEntry) -> RetryQueueEntry: ...

    async def get(self, entry_id: str) -> Optional[RetryQueueEntry]: ...

    async def save(self, entry: RetryQueueEntry) -> RetryQueueEntry: ...

    async def claim_due(self, now: datetime, lease_until: datetime, limit: int) -> List[RetryQueueEntry]:
        """Atomically lease due entries so no other executor sees them until the lease ends"""
        ...

    async def list_abandoned(self, tenant_id: str, since: datetime) -> List[RetryQueueEntry]: ...


@runtime_checkable
class AlertConfigStore(Protocol):
    """Tenant alerting configuration"""

    async def list_enabled(self) -> List[AlertConfig]: ...

    async def get(self, config_id: str) -> Optional[AlertConfig]: ...

    async def update_last_alert_sent_at(self, config_id: str, sent_at: datetime) -> None: ...


@runtime_checkable
class AlertEventStore(Protocol):
    """Audit trail of delivered alert conditions"""

    async def insert(self, event: AlertEvent) -> AlertEvent: ...

    async def insert_many(self, events: Sequence[AlertEvent]) -> None:
        """Write all events or none of them"""
        ...

    async def list_for_config(self, config_id: str, limit: int = 100) -> Sequence[AlertEvent]: ...


@runtime_checkable
class RateLimitStore(Protocol):
    """Counters and usage log behind the rate limiter"""

    async def get_count(self, service_type: str, tenant_id: str, window_start: datetime) -> int: ...

    async def increment(
        self,
        service_type: str,
        tenant_id: str,
        window_start: datetime,
        max_allowed: int,
    ) -> Optional[int]:
        """Increment the window counter unless it already holds max_allowed.

        Returns the new count, or None when the ceiling was reached. Must be
        atomic with respect to concurrent callers.
        """
        ...

    async def log_usage(self, usage: RateLimitUsage) -> None: ...
