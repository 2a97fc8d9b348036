from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DeliveryStatus(str, Enum):
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    RATE_LIMITED = "rate_limited"
    ALREADY_SENT = "already_sent"


class AttemptStatus(str, Enum):
    ATTEMPTING = "attempting"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class DeliveryRequest(BaseModel):
    """Schema for an outbound message."""

    model_config = ConfigDict(frozen=True)

    to: str = Field(..., description="Recipient address")
    subject: str = Field(..., description="Message subject")
    body: str = Field(..., description="Message body")
    id: Optional[str] = Field(None, description="Idempotency key; derived when absent")


class DeliveryAttempt(BaseModel):
    """One try against one backend."""

    provider: str = Field(..., description="Backend name")
    attempt: int = Field(..., ge=1, description="1-based attempt number within the backend")
    status: AttemptStatus = AttemptStatus.ATTEMPTING
    timestamp: str = Field(default_factory=utc_now_iso)
    error: Optional[str] = None


class DeliveryRecord(BaseModel):
    """Outcome history for one message id."""

    id: str
    status: DeliveryStatus
    success: bool = False
    provider: Optional[str] = None
    message_id: Optional[str] = None
    message: Optional[str] = None
    timestamp: str = Field(default_factory=utc_now_iso)
    attempts: List[DeliveryAttempt] = Field(default_factory=list)


class SendResult(BaseModel):
    """What a backend returns for an accepted message."""

    success: bool = True
    message_id: str
    provider: str
    timestamp: str = Field(default_factory=utc_now_iso)
    latency_ms: Optional[int] = None
