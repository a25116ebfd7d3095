"""
Tests for alert dispatch
"""

import asyncio
from datetime import timedelta

import pytest

from hookguard.core.alert_dispatcher import AlertDispatcher
from hookguard.core.rate_limiter import RateLimitPolicy, RateLimiter
from hookguard.core.schemas import (
    AlertConfig,
    DispatchStatus,
    FailureRateDetails,
    HighFailureRateAlert,
    LimitWindow,
    ResponseTimeDetails,
    ServiceType,
    SlowResponseTimeAlert,
)
from hookguard.exceptions.base import ConfigurationError, DispatchError, StoreError

from conftest import NOW, TENANT, FakeChannel


def _alerts():
    return [
        HighFailureRateAlert(
            webhook_name="a",
            details=FailureRateDetails(failure_rate=50.0, total_calls=10, failed_calls=5, threshold=30, window_hours=1),
        ),
        SlowResponseTimeAlert(
            webhook_name="b",
            details=ResponseTimeDetails(avg_response_time=7000, threshold=5000, calls_analyzed=8, window_hours=1),
        ),
    ]


class TestDispatch:
    """Test the send path"""

    @pytest.mark.asyncio
    async def test_one_message_one_event_per_alert(self, dispatcher, alert_config, email_channel, event_store, config_store):
        result = await dispatcher.dispatch(alert_config, _alerts(), NOW)

        assert result.status == DispatchStatus.SENT
        assert result.alerts_sent == 2
        assert result.provider_ref == "msg-1"
        assert len(email_channel.sent) == 1
        assert email_channel.sent[0]["recipients"] == alert_config.alert_recipients
        assert len(event_store.events) == 2
        assert all(e.alert_sent_to == alert_config.alert_recipients for e in event_store.events)
        assert all(e.triggered_at == NOW for e in event_store.events)
        assert (await config_store.get(alert_config.id)).last_alert_sent_at == NOW

    @pytest.mark.asyncio
    async def test_rate_limited_batch_deferred(self, email_channel, event_store, config_store, rate_limit_store, alert_config):
        limiter = RateLimiter(
            rate_limit_store,
            [RateLimitPolicy(service_type="email", window=LimitWindow.PER_HOUR, max_allowed=1)],
        )
        dispatcher = AlertDispatcher({ServiceType.EMAIL: email_channel}, limiter, event_store, config_store)
        await limiter.acquire("email", TENANT, NOW)

        result = await dispatcher.dispatch(alert_config, _alerts(), NOW)

        assert result.status == DispatchStatus.RATE_LIMITED
        assert email_channel.sent == []
        assert event_store.events == []
        assert (await config_store.get(alert_config.id)).last_alert_sent_at is None
        assert rate_limit_store.usage[-1].rate_limited

    @pytest.mark.asyncio
    async def test_channel_error_is_send_failure(self, rate_limiter, event_store, config_store, rate_limit_store, alert_config):
        channel = FakeChannel(raises=True)
        dispatcher = AlertDispatcher({ServiceType.EMAIL: channel}, rate_limiter, event_store, config_store)

        result = await dispatcher.dispatch(alert_config, _alerts(), NOW)

        assert result.status == DispatchStatus.FAILED
        assert "provider unreachable" in result.error
        assert event_store.events == []
        assert (await config_store.get(alert_config.id)).last_alert_sent_at is None
        assert rate_limit_store.usage[-1].success is False

    @pytest.mark.asyncio
    async def test_send_timeout_is_send_failure(self, rate_limiter, event_store, config_store, alert_config):
        class SlowChannel(FakeChannel):
            async def send(self, recipients, subject, body):
                await asyncio.sleep(1)
                return await super().send(recipients, subject, body)

        dispatcher = AlertDispatcher(
            {ServiceType.EMAIL: SlowChannel()}, rate_limiter, event_store, config_store, send_timeout=0.01,
        )

        result = await dispatcher.dispatch(alert_config, _alerts(), NOW)

        assert result.status == DispatchStatus.FAILED
        assert "timed out" in result.error
        assert event_store.events == []

    @pytest.mark.asyncio
    async def test_sms_channel_selected_by_config(self, rate_limiter, event_store, config_store, rate_limit_store):
        sms = FakeChannel(ServiceType.SMS)
        email = FakeChannel(ServiceType.EMAIL)
        config = AlertConfig(id="cfg-sms", tenant_id=TENANT, alert_recipients=["+15550100"], notification_channel="sms")
        config_store.add(config)
        dispatcher = AlertDispatcher(
            {ServiceType.EMAIL: email, ServiceType.SMS: sms}, rate_limiter, event_store, config_store,
        )

        result = await dispatcher.dispatch(config, _alerts(), NOW)

        assert result.status == DispatchStatus.SENT
        assert email.sent == []
        assert "<html>" not in sms.sent[0]["body"]
        assert rate_limit_store.usage[-1].service_type == "sms"

    @pytest.mark.asyncio
    async def test_missing_channel(self, rate_limiter, event_store, config_store, alert_config):
        dispatcher = AlertDispatcher({}, rate_limiter, event_store, config_store)

        with pytest.raises(ConfigurationError):
            await dispatcher.dispatch(alert_config, _alerts(), NOW)

    @pytest.mark.asyncio
    async def test_audit_write_failure_leaves_no_partial_rows(self, dispatcher, alert_config, event_store, config_store):
        real_insert_many = event_store.insert_many

        async def broken_insert_many(events):
            raise StoreError("disk full", operation="alert_event.insert_many")

        event_store.insert_many = broken_insert_many

        with pytest.raises(DispatchError):
            await dispatcher.dispatch(alert_config, _alerts(), NOW)

        assert event_store.events == []
        assert (await config_store.get(alert_config.id)).last_alert_sent_at is None

        event_store.insert_many = real_insert_many
        result = await dispatcher.dispatch(alert_config, _alerts(), NOW + timedelta(minutes=5))

        assert result.status == DispatchStatus.SENT
        assert len(event_store.events) == 2
        assert {e.triggered_at for e in event_store.events} == {NOW + timedelta(minutes=5)}

    @pytest.mark.asyncio
    async def test_unexpected_send_error_still_logs_outcome(self, rate_limiter, event_store, config_store, rate_limit_store, alert_config):
        class BrokenChannel(FakeChannel):
            async def send(self, recipients, subject, body):
                raise RuntimeError("socket closed")

        dispatcher = AlertDispatcher({ServiceType.EMAIL: BrokenChannel()}, rate_limiter, event_store, config_store)

        with pytest.raises(RuntimeError):
            await dispatcher.dispatch(alert_config, _alerts(), NOW)

        assert len(rate_limit_store.usage) == 1
        assert rate_limit_store.usage[0].success is False
        assert rate_limit_store.usage[0].rate_limited is False
        assert event_store.events == []

    @pytest.mark.asyncio
    async def test_recipients_captured_at_send_time(self, dispatcher, alert_config, event_store, config_store):
        await dispatcher.dispatch(alert_config, _alerts()[:1], NOW)
        config_store.add(alert_config.model_copy(update={"alert_recipients": ["new@clinic.example"]}))

        later = (await config_store.get(alert_config.id)).model_copy(update={"last_alert_sent_at": None})
        await dispatcher.dispatch(later, _alerts()[:1], NOW + timedelta(hours=3))

        assert event_store.events[0].alert_sent_to == ["ops@clinic.example", "lead@clinic.example"]
        assert event_store.events[1].alert_sent_to == ["new@clinic.example"]
