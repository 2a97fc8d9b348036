from .base import DeliveryBackend
from .mock_backend import FaultInjection, MockEmailBackend, primary_mock_backend, secondary_mock_backend
from .webhook_backend import WebhookBackend

__all__ = [
    "DeliveryBackend",
    "FaultInjection",
    "MockEmailBackend",
    "primary_mock_backend",
    "secondary_mock_backend",
    "WebhookBackend",
]
