"""
In-process store implementations.

Used by tests and by single-process deployments. Each store serializes
its mutations behind an ``asyncio.Lock`` so claim and increment
operations stay atomic across concurrent coroutines.
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ..core.schemas import (
    AlertConfig,
    AlertEvent,
    RateLimitCounter,
    RateLimitUsage,
    RetryQueueEntry,
    RetryStatus,
    WebhookAttempt,
)


class InMemoryActivityLog:
    """Append-only activity log"""

    def __init__(self):
        self._attempts: List[WebhookAttempt] = []

    async def append(self, attempt: WebhookAttempt) -> WebhookAttempt:
        self._attempts.append(attempt)
        return attempt

    async def query(self, tenant_id: str, since: datetime) -> List[WebhookAttempt]:
        return sorted(
            (a for a in self._attempts if a.tenant_id == tenant_id and a.triggered_at >= since),
            key=lambda a: a.triggered_at,
            reverse=True,
        )

    def __len__(self) -> int:
        return len(self._attempts)


class InMemoryRetryQueueStore:
    """Retry queue entries keyed by id"""

    def __init__(self):
        self._entries: Dict[str, RetryQueueEntry] = {}
        self._lock = asyncio.Lock()

    async def insert(self, entry: RetryQueueEntry) -> RetryQueueEntry:
        async with self._lock:
            self._entries[entry.id] = entry.model_copy()
        return entry

    async def get(self, entry_id: str) -> Optional[RetryQueueEntry]:
        entry = self._entries.get(entry_id)
        return entry.model_copy() if entry else None

    async def save(self, entry: RetryQueueEntry) -> RetryQueueEntry:
        async with self._lock:
            self._entries[entry.id] = entry.model_copy()
        return entry

    async def claim_due(self, now: datetime, lease_until: datetime, limit: int) -> List[RetryQueueEntry]:
        async with self._lock:
            due = sorted(
                (e for e in self._entries.values() if e.is_due(now) and not e.is_claimed(now)),
                key=lambda e: e.next_retry_at,
            )[:limit]
            claimed = []
            for entry in due:
                entry.claimed_until = lease_until
                claimed.append(entry.model_copy())
            return claimed

    async def list_abandoned(self, tenant_id: str, since: datetime) -> List[RetryQueueEntry]:
        return [
            e.model_copy()
            for e in self._entries.values()
            if e.tenant_id == tenant_id
            and e.status == RetryStatus.ABANDONED
            and e.updated_at >= since
        ]

    def all(self) -> List[RetryQueueEntry]:
        return [e.model_copy() for e in self._entries.values()]


class InMemoryAlertConfigStore:
    """Alert configs keyed by id"""

    def __init__(self, configs: Optional[List[AlertConfig]] = None):
        self._configs: Dict[str, AlertConfig] = {}
        for config in configs or []:
            self.add(config)

    def add(self, config: AlertConfig) -> AlertConfig:
        self._configs[config.id] = config.model_copy()
        return config

    async def list_enabled(self) -> List[AlertConfig]:
        return [c.model_copy() for c in self._configs.values() if c.enabled]

    async def get(self, config_id: str) -> Optional[AlertConfig]:
        config = self._configs.get(config_id)
        return config.model_copy() if config else None

    async def update_last_alert_sent_at(self, config_id: str, sent_at: datetime) -> None:
        config = self._configs.get(config_id)
        if config is not None:
            config.last_alert_sent_at = sent_at


class InMemoryAlertEventStore:
    """Alert audit trail"""

    def __init__(self):
        self.events: List[AlertEvent] = []

    async def insert(self, event: AlertEvent) -> AlertEvent:
        self.events.append(event)
        return event

    async def insert_many(self, events: List[AlertEvent]) -> None:
        self.events.extend(list(events))

    async def list_for_config(self, config_id: str, limit: int = 100) -> List[AlertEvent]:
        matching = [e for e in self.events if e.config_id == config_id]
        return sorted(matching, key=lambda e: e.triggered_at, reverse=True)[:limit]


class InMemoryRateLimitStore:
    """Window counters plus a usage log"""

    def __init__(self):
        self._counters: Dict[Tuple[str, str, datetime], RateLimitCounter] = {}
        self.usage: List[RateLimitUsage] = []
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get_count(self, service_type: str, tenant_id: str, window_start: datetime) -> int:
        counter = self._counters.get((service_type, tenant_id, window_start))
        return counter.count if counter else 0

    async def increment(
        self,
        service_type: str,
        tenant_id: str,
        window_start: datetime,
        max_allowed: int,
    ) -> Optional[int]:
        async with self._locks[(service_type, tenant_id)]:
            key = (service_type, tenant_id, window_start)
            counter = self._counters.get(key)
            if counter is None:
                counter = RateLimitCounter(
                    service_type=service_type,
                    tenant_id=tenant_id,
                    window_start=window_start,
                    max_allowed=max_allowed,
                )
                self._counters[key] = counter
            counter.max_allowed = max_allowed
            if counter.count >= max_allowed:
                return None
            counter.count += 1
            return counter.count

    async def log_usage(self, usage: RateLimitUsage) -> None:
        self.usage.append(usage)

    def counter(self, service_type: str, tenant_id: str, window_start: datetime) -> Optional[RateLimitCounter]:
        return self._counters.get((service_type, tenant_id, window_start))
