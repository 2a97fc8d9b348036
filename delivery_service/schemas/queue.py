from typing import Dict, Optional
from pydantic import BaseModel, Field

from .delivery import DeliveryRequest


class QueueItemSnapshot(BaseModel):
    """Inspection view of a queued message."""

    item_id: str
    request: DeliveryRequest
    priority: int
    enqueued_at: float = Field(..., description="Enqueue time in epoch milliseconds")
    age_ms: float


class QueueItemAge(BaseModel):
    age_ms: float
    enqueued_at: float


class QueueStats(BaseModel):
    size: int = 0
    is_empty: bool = True
    oldest_item: Optional[QueueItemAge] = None
    newest_item: Optional[QueueItemAge] = None
    average_age_ms: float = 0
    priority_distribution: Dict[int, int] = Field(default_factory=dict)


class QueuedResponse(BaseModel):
    id: str
    queue_size: int


class DrainResponse(BaseModel):
    processed: int
    queue_size: int
