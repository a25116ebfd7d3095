"""
Per-tenant, per-service rate limiting for outbound notifications.

Windows are tumbling and aligned to the UTC epoch, so a per_hour window
always starts on the hour. A policy may be scoped to one tenant; tenants
without an override fall back to the service default, and services with
no policy at all are unlimited.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple, Union

import structlog

from .config import HookguardConfig
from .schemas import LimitWindow, RateLimitStatus, RateLimitUsage, ServiceType
from ..stores.base import RateLimitStore
from ..utils.metrics import MetricsCollector

logger = structlog.get_logger(__name__)

ServiceKey = Union[ServiceType, str]


@dataclass(frozen=True)
class RateLimitPolicy:
    """Maximum sends of one service type per window"""
    service_type: str
    window: LimitWindow
    max_allowed: int
    tenant_id: Optional[str] = None

    def __post_init__(self):
        if self.max_allowed <= 0:
            raise ValueError("max_allowed must be positive")


def window_start_for(window: LimitWindow, now: datetime) -> datetime:
    """Start of the tumbling window containing ``now``"""
    epoch = datetime(1970, 1, 1, tzinfo=now.tzinfo)
    elapsed = int((now - epoch).total_seconds())
    return epoch + timedelta(seconds=elapsed - elapsed % window.seconds)


def policies_from_config(config: HookguardConfig) -> List[RateLimitPolicy]:
    """Default email and SMS policies from configuration"""
    return [
        RateLimitPolicy(
            service_type=ServiceType.EMAIL.value,
            window=LimitWindow(config.email_rate_window),
            max_allowed=config.email_rate_limit,
        ),
        RateLimitPolicy(
            service_type=ServiceType.SMS.value,
            window=LimitWindow(config.sms_rate_window),
            max_allowed=config.sms_rate_limit,
        ),
    ]


def _service_key(service_type: ServiceKey) -> str:
    return service_type.value if isinstance(service_type, ServiceType) else str(service_type)


class RateLimiter:
    """
    Bounds outbound volume per tenant per service.

    ``acquire`` is the atomic check-and-increment callers should use.
    ``check_rate_limit`` and ``record_usage`` are kept as separate steps
    for callers that report usage after the fact; ``record_usage`` still
    refuses to push the counter past its ceiling.
    """

    def __init__(
        self,
        store: RateLimitStore,
        policies: Optional[List[RateLimitPolicy]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.metrics = metrics
        self._policies: Dict[Tuple[str, Optional[str]], RateLimitPolicy] = {}
        for policy in policies or []:
            self.add_policy(policy)

    def add_policy(self, policy: RateLimitPolicy) -> None:
        """Register a policy, replacing any with the same service and tenant scope"""
        self._policies[(_service_key(policy.service_type), policy.tenant_id)] = policy

    def policy_for(self, service_type: ServiceKey, tenant_id: str) -> Optional[RateLimitPolicy]:
        service = _service_key(service_type)
        return self._policies.get((service, tenant_id)) or self._policies.get((service, None))

    async def check_rate_limit(self, service_type: ServiceKey, tenant_id: str, now: datetime) -> RateLimitStatus:
        """Report whether one more send would be allowed; never changes state"""
        policy = self.policy_for(service_type, tenant_id)
        if policy is None:
            return RateLimitStatus(allowed=True)

        window_start = window_start_for(policy.window, now)
        count = await self.store.get_count(_service_key(service_type), tenant_id, window_start)
        return RateLimitStatus(
            allowed=count < policy.max_allowed,
            current_count=count,
            max_allowed=policy.max_allowed,
            window_start=window_start,
        )

    async def record_usage(
        self,
        service_type: ServiceKey,
        tenant_id: str,
        success: bool,
        now: datetime,
    ) -> RateLimitStatus:
        """Consume one slot of quota for an attempted send and log its outcome.

        The counter is never pushed past ``max_allowed``; when it is already
        full the usage is logged as rate limited and ``allowed`` is False.
        """
        status = await self._increment(service_type, tenant_id, now)
        await self._log(service_type, tenant_id, success and status.allowed, not status.allowed, now)
        return status

    async def record_rejection(self, service_type: ServiceKey, tenant_id: str, now: datetime) -> None:
        """Log a send that was skipped by the limiter; consumes no quota"""
        await self._log(service_type, tenant_id, False, True, now)

    async def acquire(self, service_type: ServiceKey, tenant_id: str, now: datetime) -> RateLimitStatus:
        """Atomically check the limit and take one slot.

        On denial a rate-limited usage line is written and no quota is used.
        """
        status = await self._increment(service_type, tenant_id, now)
        service = _service_key(service_type)
        if self.metrics:
            self.metrics.record_rate_limit_decision(service, status.allowed)
        if not status.allowed:
            logger.info(
                "Rate limit reached",
                service_type=service,
                tenant_id=tenant_id,
                current_count=status.current_count,
                max_allowed=status.max_allowed,
            )
            await self.record_rejection(service_type, tenant_id, now)
        return status

    async def record_outcome(
        self,
        service_type: ServiceKey,
        tenant_id: str,
        success: bool,
        now: datetime,
    ) -> None:
        """Log the provider outcome for a slot taken with ``acquire``"""
        await self._log(service_type, tenant_id, success, False, now)

    async def _increment(self, service_type: ServiceKey, tenant_id: str, now: datetime) -> RateLimitStatus:
        policy = self.policy_for(service_type, tenant_id)
        if policy is None:
            return RateLimitStatus(allowed=True)

        window_start = window_start_for(policy.window, now)
        count = await self.store.increment(_service_key(service_type), tenant_id, window_start, policy.max_allowed)
        if count is None:
            return RateLimitStatus(
                allowed=False,
                current_count=policy.max_allowed,
                max_allowed=policy.max_allowed,
                window_start=window_start,
            )
        return RateLimitStatus(
            allowed=True,
            current_count=count,
            max_allowed=policy.max_allowed,
            window_start=window_start,
        )

    async def _log(
        self,
        service_type: ServiceKey,
        tenant_id: str,
        success: bool,
        rate_limited: bool,
        now: datetime,
    ) -> None:
        await self.store.log_usage(RateLimitUsage(
            service_type=_service_key(service_type),
            tenant_id=tenant_id,
            success=success,
            rate_limited=rate_limited,
            recorded_at=now,
        ))
