"""
SQLAlchemy-backed stores.

Mutations touch a single row, except alert audit batches, which are
written in one transaction. The rate-limit counter relies on a
conditional ``UPDATE ... WHERE count < max_allowed`` and retry claims on
a conditional lease update, so concurrent processes cannot overshoot a
quota or attempt the same entry twice.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, List, Optional

import structlog
from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.schemas import (
    AlertConfig,
    AlertEvent,
    RateLimitUsage,
    RetryQueueEntry,
    RetryStatus,
    WebhookAttempt,
)
from ..database.models import (
    AlertConfigRecord,
    AlertEventRecord,
    RateLimitCounterRecord,
    RateLimitUsageRecord,
    RetryQueueRecord,
    WebhookActivityRecord,
)
from ..database.session import DatabaseManager
from ..exceptions.base import StoreError

logger = structlog.get_logger(__name__)


class SQLStore:
    """Shared session handling; SQLAlchemy errors surface as StoreError"""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self.db.get_async_session() as session:
                yield session
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error("Store operation failed", operation=operation, error=str(e))
            raise StoreError(f"{operation} failed: {e}", operation=operation, original_error=e)


class SQLActivityLog(SQLStore):

    async def append(self, attempt: WebhookAttempt) -> WebhookAttempt:
        async with self._session("activity_log.append") as session:
            session.add(WebhookActivityRecord(
                id=attempt.id,
                tenant_id=attempt.tenant_id,
                webhook_name=attempt.webhook_name,
                url=attempt.url,
                status=attempt.status.value,
                duration_ms=attempt.duration_ms,
                triggered_at=attempt.triggered_at,
                error_message=attempt.error_message,
            ))
        return attempt

    async def query(self, tenant_id: str, since: datetime) -> List[WebhookAttempt]:
        async with self._session("activity_log.query") as session:
            result = await session.execute(
                select(WebhookActivityRecord)
                .where(
                    WebhookActivityRecord.tenant_id == tenant_id,
                    WebhookActivityRecord.triggered_at >= since,
                )
                .order_by(WebhookActivityRecord.triggered_at.desc())
            )
            return [WebhookAttempt.model_validate(r, from_attributes=True) for r in result.scalars()]


class SQLRetryQueueStore(SQLStore):

    async def insert(self, entry: RetryQueueEntry) -> RetryQueueEntry:
        async with self._session("retry_queue.insert") as session:
            session.add(RetryQueueRecord(**self._columns(entry)))
        return entry

    async def get(self, entry_id: str) -> Optional[RetryQueueEntry]:
        async with self._session("retry_queue.get") as session:
            record = await session.get(RetryQueueRecord, entry_id)
            return self._to_entry(record) if record else None

    async def save(self, entry: RetryQueueEntry) -> RetryQueueEntry:
        async with self._session("retry_queue.save") as session:
            record = await session.get(RetryQueueRecord, entry.id)
            if record is None:
                raise StoreError(f"Retry queue entry {entry.id} does not exist", operation="retry_queue.save")
            for key, value in self._columns(entry).items():
                setattr(record, key, value)
        return entry

    async def claim_due(self, now: datetime, lease_until: datetime, limit: int) -> List[RetryQueueEntry]:
        unclaimed = or_(RetryQueueRecord.claimed_until.is_(None), RetryQueueRecord.claimed_until <= now)

        async with self._session("retry_queue.claim_due") as session:
            result = await session.execute(
                select(RetryQueueRecord.id)
                .where(
                    RetryQueueRecord.status.in_([RetryStatus.PENDING.value, RetryStatus.RETRYING.value]),
                    RetryQueueRecord.next_retry_at <= now,
                    unclaimed,
                )
                .order_by(RetryQueueRecord.next_retry_at)
                .limit(limit)
            )
            candidates = list(result.scalars())

            claimed_ids = []
            for entry_id in candidates:
                claim = await session.execute(
                    update(RetryQueueRecord)
                    .where(and_(RetryQueueRecord.id == entry_id, unclaimed))
                    .values(claimed_until=lease_until)
                )
                if claim.rowcount == 1:
                    claimed_ids.append(entry_id)

            if not claimed_ids:
                return []

            result = await session.execute(
                select(RetryQueueRecord)
                .where(RetryQueueRecord.id.in_(claimed_ids))
                .order_by(RetryQueueRecord.next_retry_at)
            )
            return [self._to_entry(r) for r in result.scalars()]

    async def list_abandoned(self, tenant_id: str, since: datetime) -> List[RetryQueueEntry]:
        async with self._session("retry_queue.list_abandoned") as session:
            result = await session.execute(
                select(RetryQueueRecord)
                .where(
                    RetryQueueRecord.tenant_id == tenant_id,
                    RetryQueueRecord.status == RetryStatus.ABANDONED.value,
                    RetryQueueRecord.updated_at >= since,
                )
                .order_by(RetryQueueRecord.updated_at)
            )
            return [self._to_entry(r) for r in result.scalars()]

    @staticmethod
    def _columns(entry: RetryQueueEntry) -> dict:
        data = entry.model_dump()
        data["status"] = entry.status.value
        return data

    @staticmethod
    def _to_entry(record: RetryQueueRecord) -> RetryQueueEntry:
        return RetryQueueEntry.model_validate(record, from_attributes=True)


class SQLAlertConfigStore(SQLStore):

    async def add(self, config: AlertConfig) -> AlertConfig:
        async with self._session("alert_config.add") as session:
            data = config.model_dump()
            data["notification_channel"] = config.notification_channel.value
            session.add(AlertConfigRecord(**data))
        return config

    async def list_enabled(self) -> List[AlertConfig]:
        async with self._session("alert_config.list_enabled") as session:
            result = await session.execute(
                select(AlertConfigRecord).where(AlertConfigRecord.enabled.is_(True))
            )
            return [AlertConfig.model_validate(r, from_attributes=True) for r in result.scalars()]

    async def get(self, config_id: str) -> Optional[AlertConfig]:
        async with self._session("alert_config.get") as session:
            record = await session.get(AlertConfigRecord, config_id)
            return AlertConfig.model_validate(record, from_attributes=True) if record else None

    async def update_last_alert_sent_at(self, config_id: str, sent_at: datetime) -> None:
        async with self._session("alert_config.update_last_alert_sent_at") as session:
            await session.execute(
                update(AlertConfigRecord)
                .where(AlertConfigRecord.id == config_id)
                .values(last_alert_sent_at=sent_at)
            )


class SQLAlertEventStore(SQLStore):

    async def insert(self, event: AlertEvent) -> AlertEvent:
        async with self._session("alert_event.insert") as session:
            session.add(self._record(event))
        return event

    async def insert_many(self, events: List[AlertEvent]) -> None:
        """Write every event in one transaction"""
        try:
            async with self._session("alert_event.insert_many") as session:
                session.add_all([self._record(event) for event in events])
        except IntegrityError as e:
            raise StoreError(f"alert_event.insert_many failed: {e}", operation="alert_event.insert_many", original_error=e)

    @staticmethod
    def _record(event: AlertEvent) -> AlertEventRecord:
        data = event.model_dump(mode="json")
        data["triggered_at"] = event.triggered_at
        return AlertEventRecord(**data)

    async def list_for_config(self, config_id: str, limit: int = 100) -> List[AlertEvent]:
        async with self._session("alert_event.list_for_config") as session:
            result = await session.execute(
                select(AlertEventRecord)
                .where(AlertEventRecord.config_id == config_id)
                .order_by(AlertEventRecord.triggered_at.desc())
                .limit(limit)
            )
            return [AlertEvent.model_validate(r, from_attributes=True) for r in result.scalars()]


class SQLRateLimitStore(SQLStore):

    async def get_count(self, service_type: str, tenant_id: str, window_start: datetime) -> int:
        async with self._session("rate_limit.get_count") as session:
            count = await session.scalar(
                select(RateLimitCounterRecord.count).where(
                    RateLimitCounterRecord.service_type == service_type,
                    RateLimitCounterRecord.tenant_id == tenant_id,
                    RateLimitCounterRecord.window_start == window_start,
                )
            )
            return count or 0

    async def increment(
        self,
        service_type: str,
        tenant_id: str,
        window_start: datetime,
        max_allowed: int,
    ) -> Optional[int]:
        try:
            return await self._increment(service_type, tenant_id, window_start, max_allowed)
        except IntegrityError:
            # lost the race to create the window row; it exists now
            try:
                return await self._increment(service_type, tenant_id, window_start, max_allowed)
            except IntegrityError as e:
                raise StoreError("rate_limit.increment failed", operation="rate_limit.increment", original_error=e)

    async def _increment(
        self,
        service_type: str,
        tenant_id: str,
        window_start: datetime,
        max_allowed: int,
    ) -> Optional[int]:
        in_window = and_(
            RateLimitCounterRecord.service_type == service_type,
            RateLimitCounterRecord.tenant_id == tenant_id,
            RateLimitCounterRecord.window_start == window_start,
        )

        async with self._session("rate_limit.increment") as session:
            exists = await session.scalar(select(RateLimitCounterRecord.id).where(in_window))
            if exists is None:
                session.add(RateLimitCounterRecord(
                    service_type=service_type,
                    tenant_id=tenant_id,
                    window_start=window_start,
                    count=1,
                    max_allowed=max_allowed,
                ))
                await session.flush()
                return 1

            result = await session.execute(
                update(RateLimitCounterRecord)
                .where(in_window, RateLimitCounterRecord.count < max_allowed)
                .values(count=RateLimitCounterRecord.count + 1, max_allowed=max_allowed)
            )
            if result.rowcount == 0:
                return None
            return await session.scalar(select(RateLimitCounterRecord.count).where(in_window))

    async def log_usage(self, usage: RateLimitUsage) -> None:
        async with self._session("rate_limit.log_usage") as session:
            session.add(RateLimitUsageRecord(**usage.model_dump()))

    async def list_usage(self, tenant_id: str, service_type: Optional[str] = None) -> List[RateLimitUsage]:
        async with self._session("rate_limit.list_usage") as session:
            query = select(RateLimitUsageRecord).where(RateLimitUsageRecord.tenant_id == tenant_id)
            if service_type:
                query = query.where(RateLimitUsageRecord.service_type == service_type)
            result = await session.execute(query.order_by(RateLimitUsageRecord.recorded_at))
            return [RateLimitUsage.model_validate(r, from_attributes=True) for r in result.scalars()]
