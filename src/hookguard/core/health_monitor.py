"""
Webhook health monitoring.

One pass walks every enabled alert config, aggregates the tenant's
activity log over the config's window, evaluates the failure-rate and
response-time thresholds, picks up newly abandoned retry entries, and
hands any resulting alerts to the dispatcher.
"""

import asyncio
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional

import structlog

from .alert_dispatcher import AlertDispatcher
from .schemas import (
    AbandonedWebhookAlert,
    AbandonedWebhookDetails,
    Alert,
    AlertConfig,
    AttemptStatus,
    ConfigOutcome,
    ConfigResult,
    DispatchStatus,
    FailureRateDetails,
    HealthCheckSummary,
    HighFailureRateAlert,
    ResponseTimeDetails,
    RetryQueueEntry,
    SlowResponseTimeAlert,
    WebhookAttempt,
)
from ..exceptions.base import TimeoutError
from ..stores.base import ActivityLog, AlertConfigStore, RetryQueueStore
from ..utils.metrics import MetricsCollector

logger = structlog.get_logger(__name__)


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


@dataclass
class WebhookStats:
    """Attempt counts and durations for one webhook inside a window"""
    webhook_name: str
    total: int = 0
    failed: int = 0
    timeout: int = 0
    durations: List[int] = field(default_factory=list)

    def add(self, attempt: WebhookAttempt) -> None:
        self.total += 1
        if attempt.status == AttemptStatus.FAILED:
            self.failed += 1
        elif attempt.status == AttemptStatus.TIMEOUT:
            self.timeout += 1
        if attempt.duration_ms is not None:
            self.durations.append(attempt.duration_ms)

    @property
    def failure_count(self) -> int:
        return self.failed + self.timeout

    @property
    def failure_rate(self) -> float:
        """Percent of attempts that failed or timed out"""
        return self.failure_count * 100 / self.total if self.total else 0.0

    @property
    def avg_duration(self) -> Optional[float]:
        """Mean duration over attempts that reported one"""
        if not self.durations:
            return None
        return sum(self.durations) / len(self.durations)


def aggregate_attempts(attempts: List[WebhookAttempt]) -> Dict[str, WebhookStats]:
    """Group attempts by webhook name"""
    stats: Dict[str, WebhookStats] = {}
    for attempt in attempts:
        if attempt.webhook_name not in stats:
            stats[attempt.webhook_name] = WebhookStats(webhook_name=attempt.webhook_name)
        stats[attempt.webhook_name].add(attempt)
    return stats


def evaluate_thresholds(stats: WebhookStats, config: AlertConfig) -> List[Alert]:
    """Failure-rate and response-time alerts for one webhook; comparisons are inclusive"""
    alerts: List[Alert] = []

    if stats.total >= config.min_calls_required and stats.failure_rate >= config.failure_rate_threshold:
        alerts.append(HighFailureRateAlert(
            webhook_name=stats.webhook_name,
            details=FailureRateDetails(
                failure_rate=round_half_up(stats.failure_rate, 1),
                total_calls=stats.total,
                failed_calls=stats.failure_count,
                threshold=config.failure_rate_threshold,
                window_hours=config.check_window_hours,
            ),
        ))

    avg = stats.avg_duration
    if avg is not None and avg >= config.response_time_threshold:
        alerts.append(SlowResponseTimeAlert(
            webhook_name=stats.webhook_name,
            details=ResponseTimeDetails(
                avg_response_time=int(round_half_up(avg)),
                threshold=config.response_time_threshold,
                calls_analyzed=len(stats.durations),
                window_hours=config.check_window_hours,
            ),
        ))

    return alerts


def abandoned_alert(entry: RetryQueueEntry) -> AbandonedWebhookAlert:
    return AbandonedWebhookAlert(
        webhook_name=entry.webhook_name,
        details=AbandonedWebhookDetails(
            webhook_url=entry.url,
            retry_count=entry.retry_count,
            last_error=entry.last_error,
            abandoned_at=entry.updated_at,
        ),
    )


_DISPATCH_OUTCOMES = {
    DispatchStatus.SENT: ConfigOutcome.SENT,
    DispatchStatus.RATE_LIMITED: ConfigOutcome.RATE_LIMITED,
    DispatchStatus.FAILED: ConfigOutcome.SEND_FAILED,
}


class HealthMonitor:
    """
    Runs health-check passes over all enabled alert configs.

    Each config is evaluated in isolation: a failure while loading its data
    or dispatching its alerts is logged with the stage it happened in and
    does not affect the other configs. Only a failure to list the configs
    fails the pass as a whole.
    """

    def __init__(
        self,
        activity_log: ActivityLog,
        retry_queue: RetryQueueStore,
        config_store: AlertConfigStore,
        dispatcher: AlertDispatcher,
        query_timeout: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.activity_log = activity_log
        self.retry_queue = retry_queue
        self.config_store = config_store
        self.dispatcher = dispatcher
        self.query_timeout = query_timeout
        self.metrics = metrics

    async def run_once(self, now: datetime, config_id: Optional[str] = None) -> HealthCheckSummary:
        """
        Run one health-check pass.

        Args:
            now: Evaluation time
            config_id: Restrict the pass to a single config

        Returns:
            Summary with the number of configs checked and alert conditions delivered
        """
        started = time.perf_counter()
        configs = await self._load_configs(config_id)
        logger.info("Starting health-check pass", configs=len(configs), config_id=config_id)

        summary = HealthCheckSummary(configs_checked=len(configs))
        for config in configs:
            result = await self.check_config(config, now)
            summary.results.append(result)
            summary.alerts_sent += result.alerts_sent

        if self.metrics:
            self.metrics.observe_pass_duration("health_check", time.perf_counter() - started)

        logger.info(
            "Health-check pass complete",
            configs_checked=summary.configs_checked,
            alerts_sent=summary.alerts_sent,
        )
        return summary

    async def check_config(self, config: AlertConfig, now: datetime) -> ConfigResult:
        """Evaluate one config; never raises"""
        result = ConfigResult(config_id=config.id, tenant_id=config.tenant_id, outcome=ConfigOutcome.ERROR)
        try:
            await self._evaluate(config, now, result)
        except Exception as e:
            logger.exception(
                "Health check failed for config",
                config_id=config.id,
                tenant_id=config.tenant_id,
                stage=result.stage,
            )
            result.outcome = ConfigOutcome.ERROR
            result.alerts_sent = 0
            result.error = str(e)

        if self.metrics:
            self.metrics.record_config_outcome(result.outcome.value)
        return result

    async def _evaluate(self, config: AlertConfig, now: datetime, result: ConfigResult) -> None:
        log = logger.bind(config_id=config.id, tenant_id=config.tenant_id)

        result.stage = "gate"
        if not config.enabled:
            result.outcome = ConfigOutcome.DISABLED
            return

        if config.in_cooldown(now):
            log.debug("Config in cooldown", cooldown_ends_at=config.cooldown_ends_at().isoformat())
            result.outcome = ConfigOutcome.COOLDOWN
            return

        window_start = config.window_start(now)

        result.stage = "load_attempts"
        attempts = await self._query(self.activity_log.query(config.tenant_id, window_start))
        if len(attempts) < config.min_calls_required:
            log.debug("Not enough calls in window", calls=len(attempts), required=config.min_calls_required)
            result.outcome = ConfigOutcome.INSUFFICIENT_SAMPLES
            return

        result.stage = "load_abandoned"
        abandoned = await self._query(self.retry_queue.list_abandoned(config.tenant_id, window_start))

        result.stage = "evaluate"
        alerts: List[Alert] = [abandoned_alert(entry) for entry in abandoned]
        stats = aggregate_attempts(attempts)
        for name in sorted(stats):
            alerts.extend(evaluate_thresholds(stats[name], config))

        result.alerts_triggered = len(alerts)
        if not alerts:
            result.outcome = ConfigOutcome.NO_ALERTS
            return

        log.info("Alert conditions detected", alerts=len(alerts))
        result.stage = "dispatch"
        dispatched = await self.dispatcher.dispatch(config, alerts, now)
        result.outcome = _DISPATCH_OUTCOMES[dispatched.status]
        result.alerts_sent = dispatched.alerts_sent
        result.error = dispatched.error

    async def _load_configs(self, config_id: Optional[str]) -> List[AlertConfig]:
        if config_id is None:
            return await self._query(self.config_store.list_enabled())
        config = await self._query(self.config_store.get(config_id))
        return [config] if config is not None else []

    async def _query(self, awaitable: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.query_timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"Store query timed out after {self.query_timeout}s",
                timeout_seconds=self.query_timeout,
            )
