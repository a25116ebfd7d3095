"""
SQLAlchemy Database Models for hookguard

Defines the tables backing the activity log, retry queue, alert
configuration, alert history and rate limiting stores.
"""

from datetime import datetime
import uuid

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, Float, Boolean, JSON,
    Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class WebhookActivityRecord(Base):
    """One outbound webhook call attempt (append-only)"""
    __tablename__ = "webhook_activity_log"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(255), nullable=False)
    webhook_name = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=False)
    status = Column(String(20), nullable=False)
    duration_ms = Column(Integer, nullable=True)
    triggered_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_activity_tenant_triggered", "tenant_id", "triggered_at"),
        CheckConstraint("status IN ('success', 'failed', 'timeout')", name="check_activity_status"),
    )

    def __repr__(self):
        return f"<WebhookActivityRecord(webhook_name='{self.webhook_name}', status='{self.status}')>"


class RetryQueueRecord(Base):
    """Webhook delivery awaiting re-attempt"""
    __tablename__ = "webhook_retry_queue"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(255), nullable=False)
    webhook_name = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    status = Column(String(20), nullable=False, default="pending")
    last_error = Column(Text, nullable=True)
    next_retry_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    claimed_until = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_retry_status_next", "status", "next_retry_at"),
        Index("ix_retry_tenant_status_updated", "tenant_id", "status", "updated_at"),
        CheckConstraint("retry_count >= 0 AND retry_count <= max_retries", name="check_retry_budget"),
        CheckConstraint(
            "status IN ('pending', 'retrying', 'succeeded', 'abandoned')",
            name="check_retry_status",
        ),
    )

    def __repr__(self):
        return f"<RetryQueueRecord(id='{self.id}', status='{self.status}', retry_count={self.retry_count})>"


class AlertConfigRecord(Base):
    """Per-tenant webhook health alerting configuration"""
    __tablename__ = "webhook_alert_config"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(255), nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    alert_recipients = Column(JSON, nullable=False, default=list)
    notification_channel = Column(String(20), nullable=False, default="email")
    failure_rate_threshold = Column(Float, nullable=False, default=30)
    response_time_threshold = Column(Integer, nullable=False, default=5000)
    check_window_hours = Column(Float, nullable=False, default=1)
    min_calls_required = Column(Integer, nullable=False, default=5)
    cooldown_hours = Column(Float, nullable=False, default=2)
    last_alert_sent_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_alert_config_enabled", "enabled"),
        CheckConstraint("min_calls_required >= 1", name="check_min_calls"),
        CheckConstraint("cooldown_hours >= 0", name="check_cooldown"),
    )


class AlertEventRecord(Base):
    """Audit row for one delivered alert condition"""
    __tablename__ = "webhook_alert_history"

    id = Column(String(36), primary_key=True, default=_uuid)
    config_id = Column(String(36), nullable=False)
    tenant_id = Column(String(255), nullable=False)
    alert_type = Column(String(50), nullable=False)
    webhook_name = Column(String(255), nullable=True)
    alert_details = Column(JSON, nullable=False, default=dict)
    alert_sent_to = Column(JSON, nullable=False, default=list)
    triggered_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_alert_history_config_triggered", "config_id", "triggered_at"),
    )


class RateLimitCounterRecord(Base):
    """Usage counter for one (service, tenant, window)"""
    __tablename__ = "rate_limit_counters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_type = Column(String(50), nullable=False)
    tenant_id = Column(String(255), nullable=False)
    window_start = Column(DateTime, nullable=False)
    count = Column(Integer, nullable=False, default=0)
    max_allowed = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("service_type", "tenant_id", "window_start", name="uq_rate_limit_window"),
        CheckConstraint("count >= 0 AND count <= max_allowed", name="check_rate_limit_ceiling"),
    )


class RateLimitUsageRecord(Base):
    """Usage log line for one gated send"""
    __tablename__ = "rate_limit_usage"

    id = Column(String(36), primary_key=True, default=_uuid)
    service_type = Column(String(50), nullable=False)
    tenant_id = Column(String(255), nullable=False)
    success = Column(Boolean, nullable=False)
    rate_limited = Column(Boolean, nullable=False, default=False)
    recorded_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_rate_limit_usage_tenant", "tenant_id", "service_type", "recorded_at"),
    )
