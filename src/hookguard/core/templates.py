"""
Alert message rendering.

Messages are rendered from a typed context with jinja2, independently of
any delivery channel. Email gets an HTML body with one section per alert
type; SMS gets a compact plain-text summary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Tuple

from jinja2 import DictLoader, Environment, select_autoescape

from .schemas import (
    AbandonedWebhookAlert,
    Alert,
    HighFailureRateAlert,
    ServiceType,
    SlowResponseTimeAlert,
)


EMAIL_TEMPLATE = """\
<!DOCTYPE html>
<html>
<head>
  <style>
    body { font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #374151; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { background: #dc2626; color: white; padding: 24px; border-radius: 8px 8px 0 0; }
    .content { background: white; padding: 24px; border: 1px solid #e5e7eb; border-top: none; }
    .section { padding: 16px; margin: 16px 0; border-radius: 4px; }
    .item { background: white; padding: 12px; margin: 8px 0; border-radius: 4px; }
    .muted { font-size: 13px; color: #6b7280; }
  </style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1 style="margin: 0; font-size: 24px;">Webhook Health Alert</h1>
      <p style="margin: 8px 0 0 0; font-size: 14px;">{{ ctx.generated_at.strftime("%Y-%m-%d %H:%M UTC") }}</p>
    </div>
    <div class="content">
      <p>We've detected {{ ctx.total }} webhook issue{{ "s" if ctx.total != 1 }} that require your attention:</p>
{% if ctx.abandoned %}
      <div class="section" style="background: #fee2e2; border-left: 4px solid #ef4444;">
        <h3>Abandoned Webhooks ({{ ctx.abandoned | length }})</h3>
        <p>These webhooks have exhausted all retry attempts and require immediate attention:</p>
{% for alert in ctx.abandoned %}
        <div class="item">
          <div><strong>{{ alert.webhook_name or "unknown webhook" }}</strong></div>
          <div class="muted">{{ alert.details.webhook_url }}</div>
          <div style="color: #dc2626;">Failed after {{ alert.details.retry_count }} attempts</div>
{% if alert.details.last_error %}
          <div class="muted" style="font-family: monospace;">{{ alert.details.last_error }}</div>
{% endif %}
        </div>
{% endfor %}
      </div>
{% endif %}
{% if ctx.high_failure_rate %}
      <div class="section" style="background: #fed7aa; border-left: 4px solid #f59e0b;">
        <h3>High Failure Rates ({{ ctx.high_failure_rate | length }})</h3>
        <p>These webhooks are experiencing elevated failure rates:</p>
{% for alert in ctx.high_failure_rate %}
        <div class="item">
          <div><strong>{{ alert.webhook_name }}</strong></div>
          <div style="color: #dc2626;"><strong>{{ alert.details.failure_rate }}%</strong> failure rate
            ({{ alert.details.failed_calls }}/{{ alert.details.total_calls }} calls failed)</div>
          <div class="muted">Threshold: {{ alert.details.threshold }}% over last {{ alert.details.window_hours }} hour(s)</div>
        </div>
{% endfor %}
      </div>
{% endif %}
{% if ctx.slow_response_time %}
      <div class="section" style="background: #dbeafe; border-left: 4px solid #3b82f6;">
        <h3>Slow Response Times ({{ ctx.slow_response_time | length }})</h3>
        <p>These webhooks are responding slower than expected:</p>
{% for alert in ctx.slow_response_time %}
        <div class="item">
          <div><strong>{{ alert.webhook_name }}</strong></div>
          <div style="color: #1e40af;">Average: <strong>{{ alert.details.avg_response_time }}ms</strong></div>
          <div class="muted">Threshold: {{ alert.details.threshold }}ms over {{ alert.details.calls_analyzed }} calls in last {{ alert.details.window_hours }} hour(s)</div>
        </div>
{% endfor %}
      </div>
{% endif %}
      <div class="section" style="background: #f9fafb;">
        <p class="muted">
          <strong>What to do next:</strong><br/>
          1. Review your webhook configurations<br/>
          2. Check external service status<br/>
          3. Verify webhook URLs are correct<br/>
          4. Review webhook activity logs for details
        </p>
      </div>
    </div>
  </div>
</body>
</html>
"""

SMS_TEMPLATE = """\
Webhook alert: {{ ctx.total }} issue{{ "s" if ctx.total != 1 }}.
{% for alert in ctx.abandoned %}
ABANDONED {{ alert.webhook_name or alert.details.webhook_url }} after {{ alert.details.retry_count }} attempts
{% endfor %}
{% for alert in ctx.high_failure_rate %}
FAILING {{ alert.webhook_name }} {{ alert.details.failure_rate }}% ({{ alert.details.failed_calls }}/{{ alert.details.total_calls }})
{% endfor %}
{% for alert in ctx.slow_response_time %}
SLOW {{ alert.webhook_name }} avg {{ alert.details.avg_response_time }}ms
{% endfor %}
"""

_env = Environment(
    loader=DictLoader({"alert_email.html": EMAIL_TEMPLATE, "alert_sms.txt": SMS_TEMPLATE}),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass
class AlertMessageContext:
    """Everything a message template may reference, grouped by alert type"""
    tenant_id: str
    generated_at: datetime
    abandoned: List[AbandonedWebhookAlert] = field(default_factory=list)
    high_failure_rate: List[HighFailureRateAlert] = field(default_factory=list)
    slow_response_time: List[SlowResponseTimeAlert] = field(default_factory=list)

    @classmethod
    def from_alerts(cls, tenant_id: str, alerts: List[Alert], generated_at: datetime) -> "AlertMessageContext":
        ctx = cls(tenant_id=tenant_id, generated_at=generated_at)
        buckets: Dict[str, list] = {
            "abandoned_webhook": ctx.abandoned,
            "high_failure_rate": ctx.high_failure_rate,
            "slow_response_time": ctx.slow_response_time,
        }
        for alert in alerts:
            buckets[alert.alert_type].append(alert)
        return ctx

    @property
    def total(self) -> int:
        return len(self.abandoned) + len(self.high_failure_rate) + len(self.slow_response_time)


def render_subject(ctx: AlertMessageContext) -> str:
    plural = "s" if ctx.total != 1 else ""
    return f"Webhook Alert: {ctx.total} issue{plural} detected"


def render_alert_message(ctx: AlertMessageContext, channel: ServiceType = ServiceType.EMAIL) -> Tuple[str, str]:
    """Render ``(subject, body)`` for the given channel"""
    if channel == ServiceType.SMS:
        body = _env.get_template("alert_sms.txt").render(ctx=ctx).strip()
    else:
        body = _env.get_template("alert_email.html").render(ctx=ctx)
    return render_subject(ctx), body
