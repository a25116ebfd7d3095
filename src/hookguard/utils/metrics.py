"""
Metrics collection utilities for hookguard
"""

from typing import Dict, Any

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
)


class MetricsCollector:
    """
    Prometheus metrics collector for the webhook reliability pipeline.

    Tracks:
    - Health-check passes and per-config outcomes
    - Alert dispatch results
    - Rate limiter decisions
    - Retry queue outcomes
    """

    # Class-level metrics to avoid duplicate registration
    _metrics_initialized = False
    _shared_metrics: Dict[str, Any] = {}

    def __init__(self):
        if not MetricsCollector._metrics_initialized:
            self._init_shared_metrics()
            MetricsCollector._metrics_initialized = True

        self.configs_evaluated = MetricsCollector._shared_metrics["configs_evaluated"]
        self.alerts_dispatched = MetricsCollector._shared_metrics["alerts_dispatched"]
        self.dispatch_results = MetricsCollector._shared_metrics["dispatch_results"]
        self.rate_limit_decisions = MetricsCollector._shared_metrics["rate_limit_decisions"]
        self.retry_outcomes = MetricsCollector._shared_metrics["retry_outcomes"]
        self.pass_duration = MetricsCollector._shared_metrics["pass_duration"]

    @classmethod
    def _init_shared_metrics(cls):
        """Initialize shared metrics once"""
        cls._shared_metrics = {
            "configs_evaluated": Counter(
                "hookguard_configs_evaluated_total",
                "Alert configs evaluated by outcome",
                ["outcome"]
            ),
            "alerts_dispatched": Counter(
                "hookguard_alerts_dispatched_total",
                "Alert conditions delivered to recipients",
                ["alert_type"]
            ),
            "dispatch_results": Counter(
                "hookguard_dispatch_results_total",
                "Alert batch dispatch results",
                ["channel", "result"]
            ),
            "rate_limit_decisions": Counter(
                "hookguard_rate_limit_decisions_total",
                "Rate limiter gate decisions",
                ["service_type", "decision"]
            ),
            "retry_outcomes": Counter(
                "hookguard_retry_outcomes_total",
                "Webhook retry attempt outcomes",
                ["outcome"]
            ),
            "pass_duration": Histogram(
                "hookguard_pass_duration_seconds",
                "Duration of a scheduled pass",
                ["job"]
            ),
        }

    def record_config_outcome(self, outcome: str) -> None:
        """Record how a single config evaluation ended"""
        self.configs_evaluated.labels(outcome=outcome).inc()

    def record_alert_dispatched(self, alert_type: str) -> None:
        """Record one delivered alert condition"""
        self.alerts_dispatched.labels(alert_type=alert_type).inc()

    def record_dispatch_result(self, channel: str, result: str) -> None:
        """Record the result of a batch dispatch"""
        self.dispatch_results.labels(channel=channel, result=result).inc()

    def record_rate_limit_decision(self, service_type: str, allowed: bool) -> None:
        """Record a rate limiter decision"""
        decision = "allowed" if allowed else "denied"
        self.rate_limit_decisions.labels(service_type=service_type, decision=decision).inc()

    def record_retry_outcome(self, outcome: str) -> None:
        """Record a retry attempt outcome"""
        self.retry_outcomes.labels(outcome=outcome).inc()

    def observe_pass_duration(self, job: str, seconds: float) -> None:
        """Record how long a pass took"""
        self.pass_duration.labels(job=job).observe(seconds)

    def get_metrics(self) -> bytes:
        """Get metrics in Prometheus format"""
        return generate_latest()


_metrics = None


def get_metrics() -> MetricsCollector:
    """Get or create the process-wide metrics collector"""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
