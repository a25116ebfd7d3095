"""
Email delivery through a Resend-compatible HTTP API
"""

from typing import List, Optional

import httpx
import structlog

from .base import HTTPChannel
from ..core.config import HookguardConfig
from ..core.schemas import SendResult, ServiceType
from ..exceptions.base import ConfigurationError

logger = structlog.get_logger(__name__)


class EmailChannel(HTTPChannel):
    """Sends one HTML email addressed to all recipients"""

    service_type = ServiceType.EMAIL

    def __init__(
        self,
        api_key: str,
        from_address: str,
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 15.0,
        attempts: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ConfigurationError("Email API key is required", config_key="email_api_key")
        super().__init__(timeout=timeout, attempts=attempts, transport=transport)
        self.api_key = api_key
        self.from_address = from_address
        self.api_url = api_url

    @classmethod
    def from_config(cls, config: HookguardConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> "EmailChannel":
        return cls(
            api_key=config.email_api_key,
            from_address=config.alert_from_email,
            api_url=config.email_api_url,
            timeout=config.send_timeout,
            attempts=config.send_attempts,
            transport=transport,
        )

    async def send(self, recipients: List[str], subject: str, body: str) -> SendResult:
        if not recipients:
            return SendResult(ok=False, error="No recipients")

        response = await self._post(
            self.api_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "from": self.from_address,
                "to": recipients,
                "subject": subject,
                "html": body,
            },
        )

        if response.is_success:
            provider_ref = self._json(response).get("id")
            logger.info("Alert email sent", recipients=len(recipients), provider_ref=provider_ref)
            return SendResult(ok=True, provider_ref=provider_ref)

        error = self._error_text(response)
        logger.warning("Email provider rejected message", error=error)
        return SendResult(ok=False, error=error)
