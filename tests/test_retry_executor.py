"""
Tests for the retry executor
"""

from datetime import timedelta

import httpx
import pytest

from hookguard.core.rate_limiter import RateLimitPolicy, RateLimiter
from hookguard.core.retry_executor import RetryExecutor
from hookguard.core.schemas import AttemptStatus, LimitWindow, RetryQueueEntry, RetryStatus
from hookguard.stores.memory import InMemoryRateLimitStore

from conftest import NOW, TENANT


def _transport(status_code=200, text="ok", raises=None):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if raises is not None:
            raise raises
        return httpx.Response(status_code, text=text)

    transport = httpx.MockTransport(handler)
    transport.calls = calls
    return transport


async def _due_entry(queue, max_retries=3, name="intake-sync"):
    return await queue.enqueue(
        tenant_id=TENANT,
        webhook_name=name,
        url=f"https://hooks.example.com/{name}",
        payload={"event": "appointment.created"},
        max_retries=max_retries,
        now=NOW - timedelta(minutes=5),
    )


class TestRunOnce:
    """Test a retry pass"""

    @pytest.mark.asyncio
    async def test_success_marks_entry_succeeded(self, retry_queue, retry_store, activity_log):
        entry = await _due_entry(retry_queue)
        transport = _transport(200)

        async with RetryExecutor(retry_queue, activity_log, transport=transport) as executor:
            summary = await executor.run_once(NOW)

        assert summary.processed == 1
        assert summary.succeeded == 1
        assert (await retry_store.get(entry.id)).status == RetryStatus.SUCCEEDED
        assert transport.calls[0].url == "https://hooks.example.com/intake-sync"
        assert b"appointment.created" in transport.calls[0].content

        attempts = await activity_log.query(TENANT, NOW - timedelta(hours=1))
        assert len(attempts) == 1
        assert attempts[0].status == AttemptStatus.SUCCESS
        assert attempts[0].duration_ms is not None
        assert attempts[0].error_message is None

    @pytest.mark.asyncio
    async def test_server_error_reschedules(self, retry_queue, retry_store, activity_log):
        entry = await _due_entry(retry_queue)

        async with RetryExecutor(retry_queue, activity_log, transport=_transport(500, "x" * 800)) as executor:
            summary = await executor.run_once(NOW)

        assert summary.failed == 1
        stored = await retry_store.get(entry.id)
        assert stored.status == RetryStatus.RETRYING
        assert stored.retry_count == 1
        assert stored.last_error == "HTTP 500: " + "x" * 500

        attempts = await activity_log.query(TENANT, NOW - timedelta(hours=1))
        assert attempts[0].status == AttemptStatus.FAILED

    @pytest.mark.asyncio
    async def test_timeout_has_no_duration(self, retry_queue, retry_store, activity_log):
        entry = await _due_entry(retry_queue)
        transport = _transport(raises=httpx.ReadTimeout("slow"))

        async with RetryExecutor(retry_queue, activity_log, timeout=30, transport=transport) as executor:
            await executor.run_once(NOW)

        attempts = await activity_log.query(TENANT, NOW - timedelta(hours=1))
        assert attempts[0].status == AttemptStatus.TIMEOUT
        assert attempts[0].duration_ms is None
        assert (await retry_store.get(entry.id)).last_error == "Request timed out after 30 seconds"

    @pytest.mark.asyncio
    async def test_last_failure_abandons(self, retry_queue, retry_store, activity_log):
        entry = await _due_entry(retry_queue, max_retries=1)

        async with RetryExecutor(retry_queue, activity_log, transport=_transport(503, "down")) as executor:
            summary = await executor.run_once(NOW)

        assert summary.abandoned == 1
        assert (await retry_store.get(entry.id)).status == RetryStatus.ABANDONED
        attempts = await activity_log.query(TENANT, NOW - timedelta(hours=1))
        assert attempts[0].error_message == "Abandoned after 1 attempts: HTTP 503: down"

    @pytest.mark.asyncio
    async def test_nothing_due(self, retry_queue, activity_log):
        async with RetryExecutor(retry_queue, activity_log, transport=_transport()) as executor:
            summary = await executor.run_once(NOW)

        assert summary.processed == 0
        assert len(activity_log) == 0

    @pytest.mark.asyncio
    async def test_rate_limited_entries_are_deferred(self, retry_queue, retry_store, activity_log):
        limiter = RateLimiter(
            InMemoryRateLimitStore(),
            [RateLimitPolicy(service_type="webhook", window=LimitWindow.PER_MINUTE, max_allowed=1)],
        )
        first = await _due_entry(retry_queue, name="first")
        second = await _due_entry(retry_queue, name="second")
        transport = _transport(200)

        async with RetryExecutor(retry_queue, activity_log, rate_limiter=limiter, transport=transport) as executor:
            summary = await executor.run_once(NOW)

        assert summary.succeeded == 1
        assert summary.deferred == 1
        assert len(transport.calls) == 1

        entries = {e.id: e for e in retry_store.all()}
        deferred = [e for e in entries.values() if e.status == RetryStatus.PENDING]
        assert len(deferred) == 1
        assert deferred[0].id in (first.id, second.id)
        assert deferred[0].claimed_until is None
        assert deferred[0].retry_count == 0

    @pytest.mark.asyncio
    async def test_one_bad_entry_does_not_stop_the_batch(self, retry_queue, retry_store, activity_log):
        await _due_entry(retry_queue, name="first")
        await _due_entry(retry_queue, name="second")
        appended = []

        async def flaky_append(attempt):
            if not appended:
                appended.append(None)
                raise RuntimeError("log unavailable")
            appended.append(attempt)
            return attempt

        activity_log.append = flaky_append

        async with RetryExecutor(retry_queue, activity_log, transport=_transport(200)) as executor:
            summary = await executor.run_once(NOW)

        assert summary.processed == 2
        assert summary.succeeded == 1
        assert len(appended) == 2

    @pytest.mark.asyncio
    async def test_unsendable_payload_is_abandoned(self, retry_queue, retry_store, activity_log):
        entry = RetryQueueEntry(
            tenant_id=TENANT,
            webhook_name="intake-sync",
            url="https://hooks.example.com/intake",
            payload={"bad": {1, 2}},
            max_retries=2,
            next_retry_at=NOW - timedelta(minutes=1),
            created_at=NOW - timedelta(minutes=5),
            updated_at=NOW - timedelta(minutes=5),
        )
        await retry_store.insert(entry)
        transport = _transport(200)

        async with RetryExecutor(retry_queue, activity_log, transport=transport) as executor:
            first = await executor.run_once(NOW)
            second = await executor.run_once(NOW + timedelta(hours=1))

        assert first.failed == 1
        assert second.abandoned == 1
        assert transport.calls == []
        assert (await retry_store.get(entry.id)).status == RetryStatus.ABANDONED

        attempts = await activity_log.query(TENANT, NOW - timedelta(hours=1))
        assert len(attempts) == 2
        assert all(a.status == AttemptStatus.FAILED for a in attempts)
        assert all("Request could not be sent" in a.error_message for a in attempts)
