import asyncio
import random
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from delivery_service.core.exceptions import DeliveryValidationError, TransientDeliveryError
from delivery_service.core.logging import get_logger
from delivery_service.schemas.delivery import DeliveryRequest, SendResult
from .base import DeliveryBackend

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

PRIMARY_ERRORS = [
    "Network timeout",
    "Authentication failed",
    "Invalid recipient",
    "Service temporarily unavailable",
    "Rate limit exceeded by provider",
]

SECONDARY_ERRORS = [
    "SMTP connection failed",
    "Quota exceeded",
    "Blacklisted recipient",
    "Internal server error",
    "DNS resolution failed",
    "SSL handshake failed",
]


@dataclass
class FaultInjection:
    """Simulated failure and latency profile for a mock backend."""
    failure_rate: float = 0.0
    error_messages: List[str] = field(default_factory=lambda: list(PRIMARY_ERRORS))
    latency_min_ms: int = 0
    latency_max_ms: int = 0
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self):
        self.set_failure_rate(self.failure_rate)
        self.set_latency(self.latency_min_ms, self.latency_max_ms)

    def set_failure_rate(self, rate: float):
        self.failure_rate = max(0.0, min(1.0, rate))

    def set_latency(self, min_ms: int, max_ms: int):
        self.latency_min_ms = max(0, min_ms)
        self.latency_max_ms = max(self.latency_min_ms, max_ms)

    def latency_ms(self) -> float:
        return self.rng.uniform(self.latency_min_ms, self.latency_max_ms)

    def should_fail(self) -> bool:
        # rate 0 never fails, rate 1 always fails
        return self.rng.random() < self.failure_rate

    def pick_error(self) -> str:
        if not self.error_messages:
            return "Simulated failure"
        return self.rng.choice(self.error_messages)


class MockEmailBackend(DeliveryBackend):
    """Mock email provider that simulates delivery latency and outages."""

    def __init__(
        self,
        name: str,
        fault_injection: Optional[FaultInjection] = None,
        max_subject_length: Optional[int] = None,
        max_body_length: Optional[int] = None,
    ):
        self.name = name
        self.faults = fault_injection or FaultInjection()
        self.max_subject_length = max_subject_length
        self.max_body_length = max_body_length

    async def send(self, request: DeliveryRequest) -> SendResult:
        """Validate, wait out the simulated latency, then succeed or fail."""
        self.validate(request)

        latency = self.faults.latency_ms()
        await asyncio.sleep(latency / 1000.0)

        if self.faults.should_fail():
            error = self.faults.pick_error()
            logger.debug("Simulated delivery failure", provider=self.name, error=error)
            raise TransientDeliveryError(f"{self.name}: {error}")

        return SendResult(
            message_id=self._generate_message_id(),
            provider=self.name,
            latency_ms=round(latency),
        )

    def validate(self, request: Optional[DeliveryRequest]):
        if request is None:
            raise DeliveryValidationError(f"{self.name}: Email data is required")

        if not request.to or not EMAIL_PATTERN.match(request.to):
            raise DeliveryValidationError(f"{self.name}: Valid recipient email is required")

        if not request.subject or not request.subject.strip():
            raise DeliveryValidationError(f"{self.name}: Subject is required")

        if not request.body or not request.body.strip():
            raise DeliveryValidationError(f"{self.name}: Body is required")

        if self.max_subject_length is not None and len(request.subject) > self.max_subject_length:
            raise DeliveryValidationError(
                f"{self.name}: Subject too long (max {self.max_subject_length} characters)"
            )

        if self.max_body_length is not None and len(request.body) > self.max_body_length:
            raise DeliveryValidationError(
                f"{self.name}: Body too long (max {self.max_body_length} characters)"
            )

    def _generate_message_id(self) -> str:
        suffix = "".join(self.faults.rng.choice("abcdefghijklmnopqrstuvwxyz0123456789") for _ in range(9))
        return f"{self.name.lower()}-{int(time.time() * 1000)}-{suffix}"

    def set_failure_rate(self, rate: float):
        self.faults.set_failure_rate(rate)

    def set_latency(self, min_ms: int, max_ms: int):
        self.faults.set_latency(min_ms, max_ms)

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "failure_rate": self.faults.failure_rate,
            "latency_range": f"{self.faults.latency_min_ms}-{self.faults.latency_max_ms}ms",
            "healthy": True,
        }


def primary_mock_backend(name: str = "Provider1", failure_rate: float = 0.1, rng: Optional[random.Random] = None) -> MockEmailBackend:
    return MockEmailBackend(
        name,
        FaultInjection(
            failure_rate=failure_rate,
            error_messages=list(PRIMARY_ERRORS),
            latency_min_ms=100,
            latency_max_ms=500,
            rng=rng or random.Random(),
        ),
    )


def secondary_mock_backend(name: str = "Provider2", failure_rate: float = 0.15, rng: Optional[random.Random] = None) -> MockEmailBackend:
    """Backup provider: slower, flakier and with length limits."""
    return MockEmailBackend(
        name,
        FaultInjection(
            failure_rate=failure_rate,
            error_messages=list(SECONDARY_ERRORS),
            latency_min_ms=200,
            latency_max_ms=800,
            rng=rng or random.Random(),
        ),
        max_subject_length=200,
        max_body_length=10000,
    )
