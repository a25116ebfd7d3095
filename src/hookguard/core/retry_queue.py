"""
Retry queue lifecycle for failed webhook deliveries.

Entries move pending -> retrying -> (succeeded | abandoned). Terminal
entries are never mutated again. Executors claim due entries through a
time-bounded lease so a given entry is attempted by at most one worker
at a time.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import structlog

from .schemas import RetryQueueEntry, RetryStatus
from ..exceptions.base import EntryNotFoundError, ValidationError
from ..stores.base import RetryQueueStore

logger = structlog.get_logger(__name__)


@dataclass
class BackoffPolicy:
    """Exponential backoff: ``min(base * 2**n, cap)`` plus optional jitter.

    ``jitter`` receives the retry count and returns extra seconds; leave it
    unset for fully deterministic scheduling.
    """
    base_seconds: float = 60.0
    max_seconds: float = 3600.0
    jitter: Optional[Callable[[int], float]] = None

    def __post_init__(self):
        if self.base_seconds < 0:
            raise ValueError("base_seconds must be non-negative")
        if self.max_seconds < self.base_seconds:
            raise ValueError("max_seconds must be >= base_seconds")

    def delay(self, retry_count: int) -> timedelta:
        seconds = min(self.base_seconds * (2 ** retry_count), self.max_seconds)
        if self.jitter is not None:
            seconds += max(0.0, self.jitter(retry_count))
        return timedelta(seconds=seconds)


class RetryQueueManager:
    """
    Owns the lifecycle of failed webhook deliveries.

    Time is always passed in as ``now`` so scheduling is reproducible.
    """

    def __init__(
        self,
        store: RetryQueueStore,
        backoff: Optional[BackoffPolicy] = None,
        lease: timedelta = timedelta(minutes=5),
        default_max_retries: int = 3,
    ):
        self.store = store
        self.default_max_retries = default_max_retries
        self.backoff = backoff or BackoffPolicy()
        self.lease = lease

    async def enqueue(
        self,
        tenant_id: str,
        webhook_name: str,
        url: str,
        payload: Dict[str, Any],
        now: datetime,
        max_retries: Optional[int] = None,
        last_error: Optional[str] = None,
    ) -> RetryQueueEntry:
        """Create a pending entry after a first delivery failure.

        Raises:
            ValidationError: If the retry budget is negative or the payload
                cannot be encoded as JSON
        """
        if max_retries is None:
            max_retries = self.default_max_retries
        if max_retries < 0:
            raise ValidationError("max_retries must be non-negative", field="max_retries", value=max_retries)
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"payload is not JSON serializable: {e}", field="payload") from e

        entry = RetryQueueEntry(
            tenant_id=tenant_id,
            webhook_name=webhook_name,
            url=url,
            payload=payload,
            max_retries=max_retries,
            status=RetryStatus.PENDING,
            last_error=last_error,
            next_retry_at=now + self.backoff.delay(0),
            created_at=now,
            updated_at=now,
        )
        await self.store.insert(entry)
        logger.info(
            "Webhook enqueued for retry",
            entry_id=entry.id,
            tenant_id=tenant_id,
            webhook_name=webhook_name,
            next_retry_at=entry.next_retry_at.isoformat(),
        )
        return entry

    async def dequeue_due(self, now: datetime, limit: int = 50) -> List[RetryQueueEntry]:
        """Claim entries whose retry time has come; claimed entries are hidden from other callers until the lease ends"""
        claimed = await self.store.claim_due(now, now + self.lease, limit)
        if claimed:
            logger.debug("Claimed due retry entries", count=len(claimed))
        return claimed

    async def record_attempt_result(
        self,
        entry_id: str,
        success: bool,
        error: Optional[str],
        now: datetime,
    ) -> RetryQueueEntry:
        """Apply one attempt outcome; terminal entries are returned unchanged"""
        entry = await self._get(entry_id)

        if entry.is_terminal:
            logger.warning(
                "Ignoring attempt result for terminal entry",
                entry_id=entry_id,
                status=entry.status.value,
            )
            return entry

        if success:
            updated = entry.model_copy(update={
                "status": RetryStatus.SUCCEEDED,
                "last_error": None,
                "updated_at": now,
                "claimed_until": None,
            })
            logger.info("Webhook retry succeeded", entry_id=entry_id, webhook_name=entry.webhook_name)
        elif entry.retry_count + 1 >= entry.max_retries:
            updated = entry.model_copy(update={
                "status": RetryStatus.ABANDONED,
                "retry_count": min(entry.retry_count + 1, entry.max_retries),
                "last_error": error,
                "updated_at": now,
                "claimed_until": None,
            })
            logger.warning(
                "Webhook abandoned after exhausting retries",
                entry_id=entry_id,
                webhook_name=entry.webhook_name,
                retry_count=updated.retry_count,
                error=error,
            )
        else:
            retry_count = entry.retry_count + 1
            updated = entry.model_copy(update={
                "status": RetryStatus.RETRYING,
                "retry_count": retry_count,
                "last_error": error,
                "next_retry_at": now + self.backoff.delay(retry_count),
                "updated_at": now,
                "claimed_until": None,
            })
            logger.info(
                "Webhook retry failed, rescheduled",
                entry_id=entry_id,
                retry_count=retry_count,
                max_retries=entry.max_retries,
                next_retry_at=updated.next_retry_at.isoformat(),
            )

        return await self.store.save(updated)

    async def release(self, entry_id: str) -> RetryQueueEntry:
        """Drop the claim on an entry without recording an attempt"""
        entry = await self._get(entry_id)
        if entry.claimed_until is None:
            return entry
        return await self.store.save(entry.model_copy(update={"claimed_until": None}))

    async def retry_now(self, entry_id: str, now: datetime) -> RetryQueueEntry:
        """Make a non-terminal entry due immediately"""
        entry = await self._get(entry_id)
        if entry.is_terminal:
            logger.info("Entry is terminal, not rescheduling", entry_id=entry_id, status=entry.status.value)
            return entry

        updated = entry.model_copy(update={"next_retry_at": now, "updated_at": now})
        logger.info("Entry queued for immediate retry", entry_id=entry_id)
        return await self.store.save(updated)

    async def list_abandoned(self, tenant_id: str, since: datetime) -> List[RetryQueueEntry]:
        return await self.store.list_abandoned(tenant_id, since)

    async def _get(self, entry_id: str) -> RetryQueueEntry:
        entry = await self.store.get(entry_id)
        if entry is None:
            raise EntryNotFoundError(f"Retry queue entry {entry_id} not found", entry_id=entry_id)
        return entry
