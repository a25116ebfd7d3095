"""
hookguard Health Service

FastAPI server exposing the scheduled passes (health check, webhook
retries) as HTTP triggers for an external scheduler, plus health and
Prometheus endpoints.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
import uvicorn
import structlog
import httpx

from ..channels.base import NotificationChannel
from ..channels.email import EmailChannel
from ..channels.sms import SMSChannel
from ..core.alert_dispatcher import AlertDispatcher
from ..core.config import HookguardConfig, get_config
from ..core.health_monitor import HealthMonitor
from ..core.rate_limiter import RateLimiter, policies_from_config
from ..core.retry_executor import RetryExecutor
from ..core.retry_queue import BackoffPolicy, RetryQueueManager
from ..core.schemas import HealthCheckSummary, RetryQueueEntry, RetrySummary, ServiceType
from ..database.migrations import init_database
from ..database.session import DatabaseManager
from ..exceptions.base import EntryNotFoundError, HookguardError
from ..stores.sql import (
    SQLActivityLog,
    SQLAlertConfigStore,
    SQLAlertEventStore,
    SQLRateLimitStore,
    SQLRetryQueueStore,
)
from ..utils.logging import setup_logging
from ..utils.metrics import get_metrics

logger = structlog.get_logger(__name__)


class ServiceHealth(BaseModel):
    """Health service status"""
    status: str = "healthy"
    timestamp: datetime
    uptime_seconds: float
    database: bool
    channels: list


def build_channels(
    config: HookguardConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[ServiceType, NotificationChannel]:
    """Channels whose provider credentials are configured"""
    channels: Dict[ServiceType, NotificationChannel] = {}
    if config.email_api_key:
        channels[ServiceType.EMAIL] = EmailChannel.from_config(config, transport=transport)
    else:
        logger.warning("Email channel disabled: no API key configured")
    if config.twilio_account_sid and config.twilio_auth_token and config.twilio_from_number:
        channels[ServiceType.SMS] = SMSChannel.from_config(config, transport=transport)
    return channels


class HookguardService:
    """
    Wires stores, channels and the core components together.

    All wall-clock reads happen here; the core receives ``now``.
    """

    def __init__(
        self,
        config: Optional[HookguardConfig] = None,
        db_manager: Optional[DatabaseManager] = None,
        channels: Optional[Dict[ServiceType, NotificationChannel]] = None,
        webhook_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or get_config()
        self.start_time = datetime.utcnow()
        self.metrics = get_metrics() if self.config.enable_metrics else None

        self.db = db_manager or DatabaseManager(self.config)
        self.activity_log = SQLActivityLog(self.db)
        self.retry_store = SQLRetryQueueStore(self.db)
        self.config_store = SQLAlertConfigStore(self.db)
        self.event_store = SQLAlertEventStore(self.db)
        self.rate_limit_store = SQLRateLimitStore(self.db)

        self.channels = channels if channels is not None else build_channels(self.config)
        self.rate_limiter = RateLimiter(
            self.rate_limit_store,
            policies_from_config(self.config),
            metrics=self.metrics,
        )
        self.retry_queue = RetryQueueManager(
            self.retry_store,
            BackoffPolicy(self.config.retry_base_delay, self.config.retry_max_delay),
            lease=timedelta(seconds=self.config.retry_lease_seconds),
            default_max_retries=self.config.default_max_retries,
        )
        self.dispatcher = AlertDispatcher(
            self.channels,
            self.rate_limiter,
            self.event_store,
            self.config_store,
            send_timeout=self.config.send_timeout,
            query_timeout=self.config.query_timeout,
            metrics=self.metrics,
        )
        self.monitor = HealthMonitor(
            self.activity_log,
            self.retry_store,
            self.config_store,
            self.dispatcher,
            query_timeout=self.config.query_timeout,
            metrics=self.metrics,
        )
        self.executor = RetryExecutor(
            self.retry_queue,
            self.activity_log,
            rate_limiter=self.rate_limiter,
            timeout=self.config.webhook_timeout,
            batch_size=self.config.retry_batch_size,
            transport=webhook_transport,
            metrics=self.metrics,
        )

    async def initialize(self) -> None:
        await init_database(self.db)

    async def run_health_check(self, config_id: Optional[str] = None) -> HealthCheckSummary:
        return await self.monitor.run_once(datetime.utcnow(), config_id=config_id)

    async def run_retries(self) -> RetrySummary:
        return await self.executor.run_once(datetime.utcnow())

    async def retry_now(self, entry_id: str) -> RetryQueueEntry:
        return await self.retry_queue.retry_now(entry_id, datetime.utcnow())

    async def get_health(self) -> ServiceHealth:
        database_ok = await self.db.test_connection()
        now = datetime.utcnow()
        return ServiceHealth(
            status="healthy" if database_ok else "degraded",
            timestamp=now,
            uptime_seconds=(now - self.start_time).total_seconds(),
            database=database_ok,
            channels=sorted(channel.value for channel in self.channels),
        )

    def get_metrics(self) -> str:
        return get_metrics().get_metrics().decode("utf-8")

    async def close(self) -> None:
        await self.executor.close()
        for channel in self.channels.values():
            close = getattr(channel, "close", None)
            if close is not None:
                await close()
        await self.db.close()


def create_app(config: Optional[HookguardConfig] = None, service: Optional[HookguardService] = None) -> FastAPI:
    """Create FastAPI application"""
    app_config = config or (service.config if service else get_config())
    setup_logging(app_config.log_level, "hookguard")
    hookguard = service or HookguardService(app_config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan management"""
        await hookguard.initialize()
        logger.info("Health service started")

        yield

        await hookguard.close()
        logger.info("Health service stopped")

    app = FastAPI(
        title="hookguard Health Service",
        description="Webhook retry and health alerting triggers",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.hookguard = hookguard

    @app.post("/api/v1/health-checks/run", response_model=HealthCheckSummary)
    async def run_health_check_endpoint(config_id: Optional[str] = Query(None)):
        """Run one health-check pass"""
        try:
            return await hookguard.run_health_check(config_id)
        except HookguardError as e:
            logger.error("Health-check pass failed", error=str(e))
            return JSONResponse(status_code=500, content={"error": str(e)})

    @app.post("/api/v1/retries/run", response_model=RetrySummary)
    async def run_retries_endpoint():
        """Process due webhook retries"""
        try:
            return await hookguard.run_retries()
        except HookguardError as e:
            logger.error("Retry pass failed", error=str(e))
            return JSONResponse(status_code=500, content={"error": str(e)})

    @app.post("/api/v1/retries/{entry_id}/retry-now", response_model=RetryQueueEntry)
    async def retry_now_endpoint(entry_id: str):
        """Make a queued webhook due immediately"""
        try:
            return await hookguard.retry_now(entry_id)
        except EntryNotFoundError as e:
            raise HTTPException(status_code=404, detail=e.message)

    @app.get("/health", response_model=ServiceHealth)
    async def health_check():
        """Health service health check"""
        return await hookguard.get_health()

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics():
        """Prometheus metrics endpoint"""
        return hookguard.get_metrics()

    @app.get("/")
    async def root() -> Dict[str, Any]:
        """Service info"""
        return {
            "service": "hookguard Health Service",
            "version": "1.0.0",
            "status": "running",
        }

    return app


async def run_server(config: Optional[HookguardConfig] = None, host: Optional[str] = None, port: Optional[int] = None):
    """Run the health service"""
    config_obj = config or get_config()
    app = create_app(config_obj)

    host = host or config_obj.service_host
    port = port or config_obj.service_port
    uvicorn_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level=config_obj.log_level.lower(),
        access_log=config_obj.debug_mode
    )

    server = uvicorn.Server(uvicorn_config)
    logger.info("Starting health service", host=host, port=port)

    await server.serve()
