"""
Alert dispatch: one consolidated message per config, one audit row per condition
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

import structlog

from .rate_limiter import RateLimiter
from .schemas import (
    Alert,
    AlertConfig,
    AlertEvent,
    DispatchResult,
    DispatchStatus,
    SendResult,
    ServiceType,
)
from .templates import AlertMessageContext, render_alert_message
from ..channels.base import NotificationChannel
from ..exceptions.base import ChannelError, ConfigurationError, DispatchError, StoreError
from ..stores.base import AlertConfigStore, AlertEventStore
from ..utils.metrics import MetricsCollector

logger = structlog.get_logger(__name__)


class AlertDispatcher:
    """
    Turns a batch of alerts for one config into one outbound message.

    The batch is all-or-nothing: when the rate limiter denies the send or
    the channel fails, no audit rows are written and the cooldown marker
    is left alone so the conditions can re-trigger on a later pass.
    """

    def __init__(
        self,
        channels: Dict[ServiceType, NotificationChannel],
        rate_limiter: RateLimiter,
        event_store: AlertEventStore,
        config_store: AlertConfigStore,
        send_timeout: float = 15.0,
        query_timeout: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.channels = channels
        self.rate_limiter = rate_limiter
        self.event_store = event_store
        self.config_store = config_store
        self.send_timeout = send_timeout
        self.query_timeout = query_timeout
        self.metrics = metrics

    def channel_for(self, config: AlertConfig) -> NotificationChannel:
        channel = self.channels.get(config.notification_channel)
        if channel is None:
            raise ConfigurationError(
                f"No notification channel registered for '{config.notification_channel.value}'",
                config_key="notification_channel",
            )
        return channel

    async def dispatch(self, config: AlertConfig, alerts: List[Alert], now: datetime) -> DispatchResult:
        """
        Deliver ``alerts`` for ``config`` and write the audit trail.

        Args:
            config: Alert configuration the batch belongs to
            alerts: Conditions raised for this config in the current pass
            now: Evaluation time, used for audit rows and the cooldown marker

        Returns:
            DispatchResult describing what happened to the batch

        Raises:
            ConfigurationError: If the config's channel is not registered
            DispatchError: If the audit trail or cooldown marker cannot be written
        """
        if not alerts:
            return DispatchResult(status=DispatchStatus.SENT, alerts_sent=0)

        channel = self.channel_for(config)
        service = config.notification_channel
        log = logger.bind(config_id=config.id, tenant_id=config.tenant_id, channel=service.value)

        status = await self.rate_limiter.acquire(service, config.tenant_id, now)
        if not status.allowed:
            log.info("Alert batch deferred by rate limit", alerts=len(alerts), max_allowed=status.max_allowed)
            self._record(service, DispatchStatus.RATE_LIMITED)
            return DispatchResult(status=DispatchStatus.RATE_LIMITED, error="Rate limit exceeded")

        recipients = list(config.alert_recipients)
        try:
            ctx = AlertMessageContext.from_alerts(config.tenant_id, alerts, now)
            subject, body = render_alert_message(ctx, service)
            result = await self._send(channel, recipients, subject, body)
        except Exception:
            # the slot is already taken
            await self.rate_limiter.record_outcome(service, config.tenant_id, False, now)
            self._record(service, DispatchStatus.FAILED)
            raise
        await self.rate_limiter.record_outcome(service, config.tenant_id, result.ok, now)

        if not result.ok:
            log.warning("Alert delivery failed", error=result.error, alerts=len(alerts))
            self._record(service, DispatchStatus.FAILED)
            return DispatchResult(status=DispatchStatus.FAILED, error=result.error)

        events = [AlertEvent.from_alert(config, alert, now) for alert in alerts]
        try:
            await asyncio.wait_for(self.event_store.insert_many(events), timeout=self.query_timeout)
            await asyncio.wait_for(
                self.config_store.update_last_alert_sent_at(config.id, now),
                timeout=self.query_timeout,
            )
        except (StoreError, asyncio.TimeoutError) as e:
            raise DispatchError(
                f"Alert delivered but audit trail could not be written: {e}",
                config_id=config.id,
            ) from e

        if self.metrics:
            for event in events:
                self.metrics.record_alert_dispatched(event.alert_type.value)

        log.info("Alert sent", alerts=len(alerts), recipients=len(recipients), provider_ref=result.provider_ref)
        self._record(service, DispatchStatus.SENT)
        return DispatchResult(
            status=DispatchStatus.SENT,
            alerts_sent=len(alerts),
            provider_ref=result.provider_ref,
        )

    async def _send(self, channel: NotificationChannel, recipients: List[str], subject: str, body: str) -> SendResult:
        try:
            return await asyncio.wait_for(channel.send(recipients, subject, body), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            return SendResult(ok=False, error=f"Send timed out after {self.send_timeout}s")
        except ChannelError as e:
            return SendResult(ok=False, error=e.message)

    def _record(self, service: ServiceType, status: DispatchStatus) -> None:
        if self.metrics:
            self.metrics.record_dispatch_result(service.value, status.value)
