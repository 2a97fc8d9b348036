from abc import ABC, abstractmethod
from typing import Any, Dict

from delivery_service.schemas.delivery import DeliveryRequest, SendResult


class DeliveryBackend(ABC):
    """Capability every delivery backend exposes to the orchestrator."""

    name: str

    @abstractmethod
    async def send(self, request: DeliveryRequest) -> SendResult:
        """
        Deliver one message.

        Raises:
            DeliveryValidationError: If the request breaks the backend's rules
            TransientDeliveryError: If delivery failed but may be retried
        """

    @abstractmethod
    def status(self) -> Dict[str, Any]:
        """Observability snapshot; never consulted by the orchestrator."""
