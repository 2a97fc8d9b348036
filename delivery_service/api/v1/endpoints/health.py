from fastapi import APIRouter, Depends, HTTPException

from delivery_service.api.deps import get_orchestrator
from delivery_service.core.config import settings
from delivery_service.schemas.health import HealthSnapshot
from delivery_service.schemas.queue import QueueStats
from delivery_service.services.delivery_orchestrator import DeliveryOrchestrator

router = APIRouter()


@router.get("/")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": "delivery-service",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT
    }


@router.get("/detailed", response_model=HealthSnapshot)
async def detailed_health_check(orchestrator: DeliveryOrchestrator = Depends(get_orchestrator)):
    """Backend circuit states, rate limiter counters and queue depth."""
    snapshot = orchestrator.health()

    if not any(provider.healthy for provider in snapshot.providers):
        raise HTTPException(status_code=503, detail=snapshot.model_dump(mode="json"))

    return snapshot


@router.get("/queue", response_model=QueueStats)
async def get_queue_status(orchestrator: DeliveryOrchestrator = Depends(get_orchestrator)):
    """Pending queue statistics."""
    return orchestrator.queue.stats()
