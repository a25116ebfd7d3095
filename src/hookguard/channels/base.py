"""
Notification channel interface and shared HTTP plumbing
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.schemas import SendResult, ServiceType
from ..exceptions.base import ChannelError

logger = structlog.get_logger(__name__)


@runtime_checkable
class NotificationChannel(Protocol):
    """Opaque capability that delivers one rendered message to recipients"""

    service_type: ServiceType

    async def send(self, recipients: List[str], subject: str, body: str) -> SendResult: ...


class HTTPChannel:
    """
    Base class for channels backed by an HTTP provider API.

    Transport errors are retried with exponential backoff; HTTP error
    responses are not, since the provider has already answered.
    """

    service_type: ServiceType

    def __init__(
        self,
        timeout: float = 15.0,
        attempts: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.attempts = attempts
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        """POST with retries on transport failures; raises ChannelError once they are exhausted"""
        channel = self.service_type.value
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.attempts),
                wait=wait_exponential(multiplier=0.5, max=4),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    return await self.client.post(url, **kwargs)
        except httpx.TimeoutException as e:
            raise ChannelError(
                f"{channel} provider timed out after {self.timeout}s",
                channel=channel,
                original_error=e,
            )
        except httpx.HTTPError as e:
            raise ChannelError(f"{channel} provider request failed: {e}", channel=channel, original_error=e)

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        return f"HTTP {response.status_code}: {response.text[:200]}"

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
