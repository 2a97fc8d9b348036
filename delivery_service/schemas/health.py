from typing import List
from pydantic import BaseModel

from delivery_service.core.circuit_breaker import CircuitState


class ProviderHealth(BaseModel):
    name: str
    circuit_state: CircuitState
    healthy: bool


class RateLimiterHealth(BaseModel):
    requests_in_window: int
    limit: int
    window_ms: int


class QueueHealth(BaseModel):
    size: int
    is_empty: bool


class HealthSnapshot(BaseModel):
    providers: List[ProviderHealth]
    rate_limiter: RateLimiterHealth
    queue: QueueHealth
    total_sent: int
    total_tracked: int
