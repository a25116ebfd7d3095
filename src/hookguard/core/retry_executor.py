"""
Retry executor: re-delivers due webhook entries from the retry queue
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx
import structlog

from .rate_limiter import RateLimiter
from .retry_queue import RetryQueueManager
from .schemas import (
    AttemptStatus,
    RetryQueueEntry,
    RetryStatus,
    RetrySummary,
    ServiceType,
    WebhookAttempt,
)
from ..stores.base import ActivityLog
from ..utils.metrics import MetricsCollector

logger = structlog.get_logger(__name__)

RESPONSE_EXCERPT_LENGTH = 500


@dataclass
class DeliveryOutcome:
    status: AttemptStatus
    duration_ms: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == AttemptStatus.SUCCESS


class RetryExecutor:
    """
    Claims due retry entries and POSTs their payloads again.

    Every attempt is appended to the activity log so the health monitor
    sees retries the same way it sees first deliveries.
    """

    def __init__(
        self,
        manager: RetryQueueManager,
        activity_log: ActivityLog,
        rate_limiter: Optional[RateLimiter] = None,
        timeout: float = 30.0,
        batch_size: int = 50,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.manager = manager
        self.activity_log = activity_log
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.batch_size = batch_size
        self.metrics = metrics
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def run_once(self, now: datetime) -> RetrySummary:
        """Process one batch of due entries"""
        started = time.perf_counter()
        entries = await self.manager.dequeue_due(now, limit=self.batch_size)
        summary = RetrySummary(processed=len(entries))

        if not entries:
            logger.debug("No webhooks to retry")
            return summary

        logger.info("Retrying due webhooks", count=len(entries))
        for entry in entries:
            try:
                outcome = await self._process(entry, now)
            except Exception:
                logger.exception(
                    "Failed to process retry entry",
                    entry_id=entry.id,
                    tenant_id=entry.tenant_id,
                    webhook_name=entry.webhook_name,
                )
                continue

            setattr(summary, outcome, getattr(summary, outcome) + 1)
            if self.metrics:
                self.metrics.record_retry_outcome(outcome)

        if self.metrics:
            self.metrics.observe_pass_duration("retry", time.perf_counter() - started)

        logger.info(
            "Retry pass complete",
            processed=summary.processed,
            succeeded=summary.succeeded,
            failed=summary.failed,
            abandoned=summary.abandoned,
            deferred=summary.deferred,
        )
        return summary

    async def _process(self, entry: RetryQueueEntry, now: datetime) -> str:
        if self.rate_limiter is not None:
            status = await self.rate_limiter.acquire(ServiceType.WEBHOOK, entry.tenant_id, now)
            if not status.allowed:
                await self.manager.release(entry.id)
                logger.info("Retry deferred by rate limit", entry_id=entry.id, tenant_id=entry.tenant_id)
                return "deferred"

        logger.debug(
            "Retrying webhook",
            entry_id=entry.id,
            webhook_name=entry.webhook_name,
            attempt=entry.retry_count + 1,
            max_retries=entry.max_retries,
        )
        delivery = await self.deliver(entry)

        if self.rate_limiter is not None:
            await self.rate_limiter.record_outcome(ServiceType.WEBHOOK, entry.tenant_id, delivery.success, now)

        updated = await self.manager.record_attempt_result(entry.id, delivery.success, delivery.error, now)

        error_message = delivery.error
        if updated.status == RetryStatus.ABANDONED:
            error_message = f"Abandoned after {updated.retry_count} attempts: {delivery.error}"

        await self.activity_log.append(WebhookAttempt(
            tenant_id=entry.tenant_id,
            webhook_name=entry.webhook_name,
            url=entry.url,
            status=delivery.status,
            duration_ms=delivery.duration_ms,
            triggered_at=now,
            error_message=error_message,
        ))

        if updated.status == RetryStatus.SUCCEEDED:
            return "succeeded"
        if updated.status == RetryStatus.ABANDONED:
            return "abandoned"
        return "failed"

    async def deliver(self, entry: RetryQueueEntry) -> DeliveryOutcome:
        """POST the entry's payload once; never raises for delivery failures"""
        started = time.monotonic()
        try:
            response = await self.client.post(entry.url, json=entry.payload)
        except httpx.TimeoutException:
            return DeliveryOutcome(
                status=AttemptStatus.TIMEOUT,
                error=f"Request timed out after {self.timeout:g} seconds",
            )
        except httpx.HTTPError as e:
            return DeliveryOutcome(
                status=AttemptStatus.FAILED,
                duration_ms=self._elapsed_ms(started),
                error=str(e) or e.__class__.__name__,
            )
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            # the request could not be built; nothing was sent
            return DeliveryOutcome(
                status=AttemptStatus.FAILED,
                error=f"Request could not be sent: {e}",
            )

        duration_ms = self._elapsed_ms(started)
        if response.is_success:
            return DeliveryOutcome(status=AttemptStatus.SUCCESS, duration_ms=duration_ms)
        return DeliveryOutcome(
            status=AttemptStatus.FAILED,
            duration_ms=duration_ms,
            error=f"HTTP {response.status_code}: {response.text[:RESPONSE_EXCERPT_LENGTH]}",
        )

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
