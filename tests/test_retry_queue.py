"""
Tests for the retry queue lifecycle
"""

import asyncio
from datetime import timedelta

import pytest

from hookguard.core.retry_queue import BackoffPolicy, RetryQueueManager
from hookguard.core.schemas import RetryStatus
from hookguard.exceptions.base import EntryNotFoundError, ValidationError
from hookguard.stores.memory import InMemoryRetryQueueStore

from conftest import NOW, TENANT


async def _enqueue(queue, max_retries=3, now=NOW, name="intake-sync"):
    return await queue.enqueue(
        tenant_id=TENANT,
        webhook_name=name,
        url=f"https://hooks.example.com/{name}",
        payload={"patient_id": 42},
        max_retries=max_retries,
        now=now,
    )


class TestBackoffPolicy:
    """Test backoff delay computation"""

    def test_exponential_growth(self):
        policy = BackoffPolicy(base_seconds=60, max_seconds=3600)
        assert policy.delay(0) == timedelta(seconds=60)
        assert policy.delay(1) == timedelta(seconds=120)
        assert policy.delay(3) == timedelta(seconds=480)

    def test_capped(self):
        policy = BackoffPolicy(base_seconds=60, max_seconds=300)
        assert policy.delay(10) == timedelta(seconds=300)

    def test_injected_jitter(self):
        policy = BackoffPolicy(base_seconds=10, max_seconds=100, jitter=lambda n: 1.5)
        assert policy.delay(0) == timedelta(seconds=11.5)

    def test_deterministic_without_jitter(self):
        policy = BackoffPolicy()
        assert policy.delay(2) == policy.delay(2)

    def test_invalid_bounds(self):
        with pytest.raises(ValueError):
            BackoffPolicy(base_seconds=100, max_seconds=10)


class TestEnqueue:
    """Test entry creation"""

    @pytest.mark.asyncio
    async def test_creates_pending_entry(self, retry_queue, retry_store):
        entry = await _enqueue(retry_queue)

        assert entry.status == RetryStatus.PENDING
        assert entry.retry_count == 0
        assert entry.next_retry_at == NOW + timedelta(seconds=60)
        stored = await retry_store.get(entry.id)
        assert stored.payload == {"patient_id": 42}

    @pytest.mark.asyncio
    async def test_negative_max_retries_rejected(self, retry_queue):
        with pytest.raises(ValidationError):
            await _enqueue(retry_queue, max_retries=-1)

    @pytest.mark.asyncio
    async def test_default_retry_budget(self, retry_store):
        queue = RetryQueueManager(retry_store, default_max_retries=5)

        entry = await queue.enqueue(TENANT, "intake-sync", "https://hooks.example.com/intake", {}, NOW)

        assert entry.max_retries == 5

    @pytest.mark.asyncio
    async def test_payload_must_be_json(self, retry_queue, retry_store):
        with pytest.raises(ValidationError) as exc_info:
            await retry_queue.enqueue(
                TENANT, "intake-sync", "https://hooks.example.com/intake", {"bad": {1, 2}}, NOW, max_retries=2,
            )

        assert exc_info.value.field == "payload"
        assert retry_store.all() == []


class TestDequeueDue:
    """Test claiming due entries"""

    @pytest.mark.asyncio
    async def test_only_due_entries_returned(self, retry_queue):
        due = await _enqueue(retry_queue, now=NOW - timedelta(minutes=5), name="due")
        await _enqueue(retry_queue, now=NOW, name="later")

        claimed = await retry_queue.dequeue_due(NOW)

        assert [e.id for e in claimed] == [due.id]

    @pytest.mark.asyncio
    async def test_ordered_by_next_retry_at(self, retry_queue):
        second = await _enqueue(retry_queue, now=NOW - timedelta(minutes=2), name="second")
        first = await _enqueue(retry_queue, now=NOW - timedelta(minutes=9), name="first")

        claimed = await retry_queue.dequeue_due(NOW)

        assert [e.id for e in claimed] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_claimed_entry_not_returned_twice(self, retry_queue):
        await _enqueue(retry_queue, now=NOW - timedelta(minutes=5))

        first = await retry_queue.dequeue_due(NOW)
        second = await retry_queue.dequeue_due(NOW)

        assert len(first) == 1
        assert second == []

    @pytest.mark.asyncio
    async def test_concurrent_dequeue_claims_once(self, retry_queue):
        for i in range(5):
            await _enqueue(retry_queue, now=NOW - timedelta(minutes=5), name=f"hook-{i}")

        results = await asyncio.gather(*(retry_queue.dequeue_due(NOW) for _ in range(4)))

        ids = [e.id for batch in results for e in batch]
        assert len(ids) == 5
        assert len(set(ids)) == 5

    @pytest.mark.asyncio
    async def test_expired_lease_can_be_reclaimed(self, retry_store):
        queue = RetryQueueManager(retry_store, lease=timedelta(minutes=5))
        await _enqueue(queue, now=NOW - timedelta(minutes=5))

        assert len(await queue.dequeue_due(NOW)) == 1
        assert await queue.dequeue_due(NOW + timedelta(minutes=1)) == []
        assert len(await queue.dequeue_due(NOW + timedelta(minutes=6))) == 1

    @pytest.mark.asyncio
    async def test_limit(self, retry_queue):
        for i in range(3):
            await _enqueue(retry_queue, now=NOW - timedelta(minutes=5), name=f"hook-{i}")

        assert len(await retry_queue.dequeue_due(NOW, limit=2)) == 2


class TestRecordAttemptResult:
    """Test state transitions"""

    @pytest.mark.asyncio
    async def test_success(self, retry_queue):
        entry = await _enqueue(retry_queue)

        updated = await retry_queue.record_attempt_result(entry.id, True, None, NOW)

        assert updated.status == RetryStatus.SUCCEEDED
        assert updated.retry_count == 0
        assert updated.claimed_until is None

    @pytest.mark.asyncio
    async def test_failure_reschedules_with_backoff(self, retry_queue):
        entry = await _enqueue(retry_queue)

        updated = await retry_queue.record_attempt_result(entry.id, False, "HTTP 502: bad gateway", NOW)

        assert updated.status == RetryStatus.RETRYING
        assert updated.retry_count == 1
        assert updated.last_error == "HTTP 502: bad gateway"
        assert updated.next_retry_at == NOW + timedelta(seconds=120)
        assert updated.updated_at == NOW

    @pytest.mark.asyncio
    async def test_three_failures_abandon(self, retry_queue, retry_store):
        entry = await _enqueue(retry_queue, max_retries=3)
        statuses = []

        for i in range(3):
            updated = await retry_queue.record_attempt_result(entry.id, False, f"error {i}", NOW + timedelta(minutes=i))
            statuses.append(updated.status)

        assert statuses == [RetryStatus.RETRYING, RetryStatus.RETRYING, RetryStatus.ABANDONED]
        final = await retry_store.get(entry.id)
        assert final.retry_count == 3
        assert final.last_error == "error 2"

        after = await retry_queue.record_attempt_result(entry.id, False, "late error", NOW + timedelta(hours=1))

        assert after.status == RetryStatus.ABANDONED
        assert after.retry_count == 3
        assert after.last_error == "error 2"

    @pytest.mark.asyncio
    async def test_succeeded_entry_is_terminal(self, retry_queue):
        entry = await _enqueue(retry_queue)
        await retry_queue.record_attempt_result(entry.id, True, None, NOW)

        after = await retry_queue.record_attempt_result(entry.id, False, "boom", NOW)

        assert after.status == RetryStatus.SUCCEEDED
        assert after.retry_count == 0

    @pytest.mark.asyncio
    async def test_zero_retry_budget_abandons_immediately(self, retry_queue):
        entry = await _enqueue(retry_queue, max_retries=0)

        updated = await retry_queue.record_attempt_result(entry.id, False, "boom", NOW)

        assert updated.status == RetryStatus.ABANDONED
        assert updated.retry_count == 0

    @pytest.mark.asyncio
    async def test_unknown_entry(self, retry_queue):
        with pytest.raises(EntryNotFoundError):
            await retry_queue.record_attempt_result("missing", True, None, NOW)


class TestRetryNow:
    """Test manual rescheduling"""

    @pytest.mark.asyncio
    async def test_makes_entry_due(self, retry_queue):
        entry = await _enqueue(retry_queue)
        assert await retry_queue.dequeue_due(NOW) == []

        updated = await retry_queue.retry_now(entry.id, NOW)

        assert updated.next_retry_at == NOW
        assert [e.id for e in await retry_queue.dequeue_due(NOW)] == [entry.id]

    @pytest.mark.asyncio
    async def test_terminal_entry_unchanged(self, retry_queue):
        entry = await _enqueue(retry_queue)
        done = await retry_queue.record_attempt_result(entry.id, True, None, NOW)

        after = await retry_queue.retry_now(entry.id, NOW + timedelta(hours=1))

        assert after.next_retry_at == done.next_retry_at
        assert after.status == RetryStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_unknown_entry(self, retry_queue):
        with pytest.raises(EntryNotFoundError):
            await retry_queue.retry_now("missing", NOW)


class TestListAbandoned:
    """Test abandoned entry lookup"""

    @pytest.mark.asyncio
    async def test_filters_by_tenant_and_time(self):
        store = InMemoryRetryQueueStore()
        queue = RetryQueueManager(store)
        recent = await _enqueue(queue, max_retries=0, name="recent")
        old = await _enqueue(queue, max_retries=0, name="old")
        await queue.record_attempt_result(recent.id, False, "boom", NOW)
        await queue.record_attempt_result(old.id, False, "boom", NOW - timedelta(hours=3))

        abandoned = await queue.list_abandoned(TENANT, NOW - timedelta(hours=1))

        assert [e.id for e in abandoned] == [recent.id]
        assert await queue.list_abandoned("other-tenant", NOW - timedelta(hours=1)) == []
