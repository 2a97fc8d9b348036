from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from delivery_service.api.deps import get_orchestrator
from delivery_service.core.config import settings
from delivery_service.core.exceptions import QueueBusyError
from delivery_service.schemas.delivery import DeliveryRecord, DeliveryRequest, DeliveryStatus
from delivery_service.schemas.queue import DrainResponse, QueuedResponse
from delivery_service.services.delivery_orchestrator import DeliveryOrchestrator

router = APIRouter()


@router.post("", response_model=DeliveryRecord)
async def send_message(
    request: DeliveryRequest,
    orchestrator: DeliveryOrchestrator = Depends(get_orchestrator)
):
    """
    Send a message now.

    - **id**: Optional idempotency key; repeated ids that already succeeded return `already_sent`
    - Responds with 429 when the global send rate is exhausted
    """
    record = await orchestrator.send(request)
    if record.status == DeliveryStatus.RATE_LIMITED:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=record.model_dump(mode="json"),
            headers={"Retry-After": str(max(1, round(orchestrator.rate_limiter.time_until_reset() / 1000)))},
        )
    return record


@router.get("", response_model=List[DeliveryRecord])
async def list_messages(orchestrator: DeliveryOrchestrator = Depends(get_orchestrator)):
    """Delivery records for every tracked message id."""
    return orchestrator.all_statuses()


@router.post("/queue", response_model=QueuedResponse, status_code=status.HTTP_202_ACCEPTED)
async def queue_message(
    request: DeliveryRequest,
    priority: int = 0,
    orchestrator: DeliveryOrchestrator = Depends(get_orchestrator)
):
    """Queue a message for a later drain."""
    message_id = orchestrator.enqueue(request, priority=priority)
    return QueuedResponse(id=message_id, queue_size=orchestrator.queue.size())


@router.post("/queue/drain", response_model=DrainResponse)
async def drain_queue(
    concurrent: bool = False,
    orchestrator: DeliveryOrchestrator = Depends(get_orchestrator)
):
    """Send every queued message, one at a time or in concurrent batches."""
    if concurrent:
        try:
            results = await orchestrator.process_queue_concurrently(batch_size=settings.QUEUE_BATCH_SIZE)
        except QueueBusyError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        processed = len(results)
    else:
        processed = await orchestrator.drain_queue()
    return DrainResponse(processed=processed, queue_size=orchestrator.queue.size())


@router.post("/reset", status_code=status.HTTP_204_NO_CONTENT)
async def reset_state(orchestrator: DeliveryOrchestrator = Depends(get_orchestrator)):
    """Clear records, idempotency keys, breakers, rate window and queue."""
    orchestrator.reset()


@router.get("/{message_id}", response_model=DeliveryRecord)
async def get_message_status(
    message_id: str,
    orchestrator: DeliveryOrchestrator = Depends(get_orchestrator)
):
    record = orchestrator.status(message_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No delivery record for {message_id}"
        )
    return record
