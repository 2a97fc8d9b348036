"""
Deterministic test doubles shared across test modules.
"""
import asyncio
from typing import Any, Dict, List, Optional, Sequence

from delivery_service.core.exceptions import TransientDeliveryError
from delivery_service.schemas.delivery import DeliveryRequest, SendResult
from delivery_service.services.backends.base import DeliveryBackend


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float):
        self.now += ms


class ScriptedBackend(DeliveryBackend):
    """Backend double that fails or succeeds following a script.

    Each entry of ``outcomes`` is consumed per call: an exception instance is
    raised, anything else means success. Once the script runs out the backend
    keeps succeeding unless ``always_fail`` is set.
    """

    def __init__(
        self,
        name: str,
        outcomes: Optional[Sequence[Any]] = None,
        always_fail: bool = False,
        delay: float = 0,
    ):
        self.name = name
        self.outcomes: List[Any] = list(outcomes or [])
        self.always_fail = always_fail
        self.delay = delay
        self.calls: List[DeliveryRequest] = []

    async def send(self, request: DeliveryRequest) -> SendResult:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
        elif self.always_fail:
            raise TransientDeliveryError(f"{self.name}: Service temporarily unavailable")

        return SendResult(message_id=f"{self.name.lower()}-{len(self.calls)}", provider=self.name)

    def status(self) -> Dict[str, Any]:
        return {"name": self.name, "calls": len(self.calls), "healthy": True}
