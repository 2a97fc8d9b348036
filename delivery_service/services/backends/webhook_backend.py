import json
import time
import uuid
from typing import Any, Dict, Optional

import httpx

from delivery_service.core.config import settings
from delivery_service.core.exceptions import DeliveryValidationError, TransientDeliveryError
from delivery_service.core.logging import get_logger
from delivery_service.core.webhook_security import WebhookSignature
from delivery_service.schemas.delivery import DeliveryRequest, SendResult
from .base import DeliveryBackend

logger = get_logger(__name__)


class WebhookBackend(DeliveryBackend):
    """Backend that delivers messages as HMAC-signed webhooks."""

    def __init__(
        self,
        name: str,
        url: str,
        signing_secret: str,
        timeout: int = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize webhook backend.

        Args:
            name: Backend name used in delivery records
            url: Target URL receiving the POST
            signing_secret: Secret for HMAC signature generation
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.name = name
        self.url = url
        self.signing_secret = signing_secret
        self.timeout = timeout
        self._transport = transport
        self._deliveries = 0
        self._failures = 0
        self._last_latency_ms: Optional[int] = None

    def _build_headers(self, payload_json: str, event_id: Optional[str]) -> Dict[str, str]:
        timestamp = str(int(time.time()))
        signature = WebhookSignature.generate_signature(
            payload_json, timestamp, self.signing_secret
        )

        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": signature,
            "X-Webhook-Timestamp": timestamp,
            "User-Agent": f"{settings.APP_NAME}/{settings.VERSION}"
        }
        if event_id:
            headers["X-Webhook-Event-ID"] = event_id
        return headers

    async def send(self, request: DeliveryRequest) -> SendResult:
        """
        POST one message to the webhook endpoint.

        Returns:
            SendResult carrying the receiver's message_id when it sends one

        Raises:
            DeliveryValidationError: On 4xx responses
            TransientDeliveryError: On 5xx responses, timeouts and transport errors
        """
        payload_json = json.dumps(
            request.model_dump(exclude_none=True), separators=(',', ':'), sort_keys=True
        )
        headers = self._build_headers(payload_json, request.id)
        started = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                logger.info(
                    "Sending webhook",
                    provider=self.name,
                    url=self.url,
                    event_id=request.id,
                    payload_size=len(payload_json)
                )
                response = await client.post(self.url, content=payload_json, headers=headers)
        except httpx.TimeoutException as e:
            self._failures += 1
            logger.warning("Webhook timeout", provider=self.name, url=self.url, timeout=self.timeout)
            raise TransientDeliveryError(f"{self.name}: Webhook timeout") from e
        except httpx.HTTPError as e:
            self._failures += 1
            logger.error("Webhook HTTP error", provider=self.name, url=self.url, error=str(e))
            raise TransientDeliveryError(f"{self.name}: {e}") from e

        latency_ms = int((time.monotonic() - started) * 1000)
        self._last_latency_ms = latency_ms

        if response.status_code >= 400:
            self._failures += 1
            logger.warning(
                "Webhook delivery failed",
                provider=self.name,
                url=self.url,
                status_code=response.status_code,
                response_text=response.text[:500]
            )
            message = f"{self.name}: Webhook rejected with status {response.status_code}"
            # Client errors will not succeed on retry against the same receiver
            if response.status_code < 500:
                raise DeliveryValidationError(message)
            raise TransientDeliveryError(message)

        self._deliveries += 1
        try:
            message_id = response.json().get("message_id")
        except (json.JSONDecodeError, AttributeError):
            message_id = None

        return SendResult(
            message_id=message_id or f"{self.name.lower()}-{uuid.uuid4().hex}",
            provider=self.name,
            latency_ms=latency_ms,
        )

    def status(self) -> Dict[str, Any]:
        attempts = self._deliveries + self._failures
        return {
            "name": self.name,
            "url": self.url,
            "failure_rate": (self._failures / attempts) if attempts else 0.0,
            "last_latency_ms": self._last_latency_ms,
            "healthy": True,
        }
