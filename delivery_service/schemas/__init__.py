from .delivery import (
    DeliveryStatus, AttemptStatus, DeliveryRequest,
    DeliveryAttempt, DeliveryRecord, SendResult
)
from .queue import QueueItemSnapshot, QueueItemAge, QueueStats, QueuedResponse, DrainResponse
from .health import ProviderHealth, RateLimiterHealth, QueueHealth, HealthSnapshot

__all__ = [
    # Delivery
    "DeliveryStatus", "AttemptStatus", "DeliveryRequest",
    "DeliveryAttempt", "DeliveryRecord", "SendResult",

    # Queue
    "QueueItemSnapshot", "QueueItemAge", "QueueStats", "QueuedResponse", "DrainResponse",

    # Health
    "ProviderHealth", "RateLimiterHealth", "QueueHealth", "HealthSnapshot",
]
