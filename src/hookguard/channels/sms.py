"""
SMS delivery through the Twilio Messages API
"""

from typing import List, Optional

import httpx
import structlog

from .base import HTTPChannel
from ..core.config import HookguardConfig
from ..core.schemas import SendResult, ServiceType
from ..exceptions.base import ChannelError, ConfigurationError

logger = structlog.get_logger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
SMS_MAX_LENGTH = 1600


class SMSChannel(HTTPChannel):
    """
    Sends one text message per recipient.

    The subject is dropped; the body is truncated to the provider's
    length limit. Delivery counts as sent when at least one recipient
    was accepted.
    """

    service_type = ServiceType.SMS

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        api_base: str = TWILIO_API_BASE,
        timeout: float = 15.0,
        attempts: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not (account_sid and auth_token and from_number):
            raise ConfigurationError("Twilio credentials and sender number are required", config_key="twilio_account_sid")
        super().__init__(timeout=timeout, attempts=attempts, transport=transport)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.messages_url = f"{api_base}/Accounts/{account_sid}/Messages.json"

    @classmethod
    def from_config(cls, config: HookguardConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> "SMSChannel":
        return cls(
            account_sid=config.twilio_account_sid,
            auth_token=config.twilio_auth_token,
            from_number=config.twilio_from_number,
            timeout=config.send_timeout,
            attempts=config.send_attempts,
            transport=transport,
        )

    async def send(self, recipients: List[str], subject: str, body: str) -> SendResult:
        if not recipients:
            return SendResult(ok=False, error="No recipients")

        text = body[:SMS_MAX_LENGTH]
        refs: List[str] = []
        errors: List[str] = []

        for recipient in recipients:
            try:
                response = await self._post(
                    self.messages_url,
                    auth=(self.account_sid, self.auth_token),
                    data={"To": recipient, "From": self.from_number, "Body": text},
                )
            except ChannelError as e:
                errors.append(f"{recipient}: {e.message}")
                continue

            if response.is_success:
                refs.append(self._json(response).get("sid") or "")
            else:
                errors.append(f"{recipient}: {self._error_text(response)}")

        if errors:
            logger.warning("Some SMS recipients failed", failed=len(errors), sent=len(refs))

        if not refs:
            return SendResult(ok=False, error="; ".join(errors))
        return SendResult(ok=True, provider_ref=",".join(r for r in refs if r), error="; ".join(errors) or None)
