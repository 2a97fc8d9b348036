import asyncio
import inspect
import itertools
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from delivery_service.core.exceptions import QueueBusyError
from delivery_service.core.logging import ContextLogger, LogBuffer
from delivery_service.schemas.delivery import DeliveryRequest
from delivery_service.schemas.queue import QueueItemAge, QueueItemSnapshot, QueueStats
from .base_service import BaseService


def epoch_ms() -> float:
    return time.time() * 1000.0


@dataclass
class QueueItem:
    request: DeliveryRequest
    priority: int
    enqueued_at: float
    item_id: str
    sequence: int = field(repr=False)

    @property
    def sort_key(self):
        return (self.priority, self.enqueued_at, self.sequence)


@dataclass
class BatchItemError:
    """Captured processor failure for one queued request."""
    error: BaseException
    request: DeliveryRequest


class DispatchQueue(BaseService):
    """In-memory priority queue of pending deliveries.

    Lower priority values are served first; equal priorities keep insertion
    order.
    """

    def __init__(
        self,
        logger: Optional[ContextLogger] = None,
        log_buffer: Optional[LogBuffer] = None,
        clock: Callable[[], float] = epoch_ms,
    ):
        super().__init__(logger=logger, log_buffer=log_buffer)
        self._clock = clock
        self._items: List[QueueItem] = []
        self._sequence = itertools.count()
        self._processing = False

    def _generate_id(self, now: float) -> str:
        return f"queue-{int(now)}-{uuid.uuid4().hex[:9]}"

    def add(self, request: DeliveryRequest, priority: int = 0) -> str:
        """Insert a request behind every item of equal or higher urgency."""
        now = self._clock()
        item = QueueItem(
            request=request,
            priority=priority,
            enqueued_at=now,
            item_id=self._generate_id(now),
            sequence=next(self._sequence),
        )

        insert_index = len(self._items)
        for index, existing in enumerate(self._items):
            if existing.priority > priority:
                insert_index = index
                break

        self._items.insert(insert_index, item)
        self.logger.debug("Message queued", item_id=item.item_id, priority=priority)
        return item.item_id

    def next(self) -> Optional[DeliveryRequest]:
        if not self._items:
            return None
        return self._items.pop(0).request

    def peek(self) -> Optional[DeliveryRequest]:
        if not self._items:
            return None
        return self._items[0].request

    def size(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def clear(self):
        self._items = []
        self._processing = False

    def remove(self, item_id: str) -> bool:
        for index, item in enumerate(self._items):
            if item.item_id == item_id:
                del self._items[index]
                return True
        return False

    def _snapshot(self, item: QueueItem, now: float) -> QueueItemSnapshot:
        return QueueItemSnapshot(
            item_id=item.item_id,
            request=item.request,
            priority=item.priority,
            enqueued_at=item.enqueued_at,
            age_ms=now - item.enqueued_at,
        )

    def items(self) -> List[QueueItemSnapshot]:
        now = self._clock()
        return [self._snapshot(item, now) for item in self._items]

    def items_by_priority(self, priority: int) -> List[QueueItemSnapshot]:
        now = self._clock()
        return [self._snapshot(item, now) for item in self._items if item.priority == priority]

    def stats(self) -> QueueStats:
        if not self._items:
            return QueueStats()

        now = self._clock()
        ages = [now - item.enqueued_at for item in self._items]
        oldest = min(self._items, key=lambda item: item.enqueued_at)
        newest = max(self._items, key=lambda item: item.enqueued_at)

        return QueueStats(
            size=len(self._items),
            is_empty=False,
            oldest_item=QueueItemAge(age_ms=now - oldest.enqueued_at, enqueued_at=oldest.enqueued_at),
            newest_item=QueueItemAge(age_ms=now - newest.enqueued_at, enqueued_at=newest.enqueued_at),
            average_age_ms=round(sum(ages) / len(ages)),
            priority_distribution=dict(Counter(item.priority for item in self._items)),
        )

    def reorder_by_priority(self):
        """Re-sort the whole buffer by (priority, enqueue time)."""
        self._items.sort(key=lambda item: item.sort_key)

    def is_processing(self) -> bool:
        return self._processing

    async def _process_one(self, processor: Callable[[DeliveryRequest], Any], request: DeliveryRequest) -> Any:
        try:
            result = processor(request)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            self.logger.warning("Queued item failed in batch", error=str(e))
            return BatchItemError(error=e, request=request)

    async def process_batch(self, processor: Callable[[DeliveryRequest], Any], batch_size: int = 5) -> List[Any]:
        """
        Drain the queue in concurrent batches.

        Args:
            processor: Callable (sync or async) run on each request
            batch_size: Maximum number of requests processed at once

        Returns:
            Processor results in dequeue order, with failures captured as
            BatchItemError

        Raises:
            QueueBusyError: If another batch run is in progress
        """
        if self._processing:
            raise QueueBusyError()

        self._processing = True
        results: List[Any] = []
        batch_size = max(1, batch_size)

        try:
            while not self.is_empty():
                batch = []
                while len(batch) < batch_size and not self.is_empty():
                    batch.append(self.next())

                batch_results = await asyncio.gather(
                    *(self._process_one(processor, request) for request in batch)
                )
                results.extend(batch_results)
        finally:
            self._processing = False

        self.logger.info("Batch processing completed", processed=len(results))
        return results
