"""
Unit tests for DispatchQueue.
"""
import asyncio
import pytest

from delivery_service.core.exceptions import QueueBusyError
from delivery_service.schemas.delivery import DeliveryRequest
from delivery_service.services.dispatch_queue import BatchItemError, DispatchQueue


def make_request(subject: str) -> DeliveryRequest:
    return DeliveryRequest(to="user@example.com", subject=subject, body="Body")


class TestDispatchQueue:
    """Test cases for DispatchQueue."""

    @pytest.fixture
    def queue(self, clock):
        return DispatchQueue(clock=clock)

    def drain_subjects(self, queue):
        subjects = []
        while not queue.is_empty():
            subjects.append(queue.next().subject)
        return subjects

    def test_empty_queue(self, queue):
        assert queue.is_empty()
        assert queue.size() == 0
        assert queue.next() is None
        assert queue.peek() is None

    def test_lower_priority_value_served_first(self, queue):
        queue.add(make_request("ten"), priority=10)
        queue.add(make_request("one"), priority=1)
        queue.add(make_request("five"), priority=5)

        assert self.drain_subjects(queue) == ["one", "five", "ten"]

    def test_equal_priority_is_fifo(self, queue):
        for subject in ["a", "b", "c"]:
            queue.add(make_request(subject), priority=2)
        queue.add(make_request("urgent"), priority=0)

        assert self.drain_subjects(queue) == ["urgent", "a", "b", "c"]

    def test_peek_does_not_remove(self, queue):
        queue.add(make_request("first"))

        assert queue.peek().subject == "first"
        assert queue.size() == 1

    def test_add_returns_unique_ids(self, queue):
        first = queue.add(make_request("a"))
        second = queue.add(make_request("b"))

        assert first != second
        assert first.startswith("queue-")

    def test_remove(self, queue):
        item_id = queue.add(make_request("a"))
        queue.add(make_request("b"))

        assert queue.remove(item_id) is True
        assert queue.remove(item_id) is False
        assert self.drain_subjects(queue) == ["b"]

    def test_clear(self, queue):
        queue.add(make_request("a"))
        queue.add(make_request("b"))

        queue.clear()

        assert queue.is_empty()
        assert not queue.is_processing()

    def test_items_report_age(self, queue, clock):
        queue.add(make_request("a"), priority=1)
        clock.advance(250)
        queue.add(make_request("b"), priority=2)
        clock.advance(100)

        items = queue.items()

        assert [item.age_ms for item in items] == [350, 100]
        assert [item.request.subject for item in queue.items_by_priority(2)] == ["b"]

    def test_empty_stats(self, queue):
        stats = queue.stats()

        assert stats.size == 0
        assert stats.is_empty is True
        assert stats.oldest_item is None
        assert stats.newest_item is None
        assert stats.average_age_ms == 0
        assert stats.priority_distribution == {}

    def test_stats(self, queue, clock):
        queue.add(make_request("a"), priority=1)
        clock.advance(500)
        queue.add(make_request("b"), priority=2)
        clock.advance(500)
        queue.add(make_request("c"), priority=1)
        clock.advance(1000)

        stats = queue.stats()

        assert stats.size == 3
        assert stats.is_empty is False
        assert stats.oldest_item.age_ms == 2000
        assert stats.newest_item.age_ms == 1000
        assert stats.average_age_ms == 1500
        assert stats.priority_distribution == {1: 2, 2: 1}

    def test_reorder_by_priority(self, queue):
        queue.add(make_request("a"), priority=1)
        queue.add(make_request("b"), priority=2)
        queue._items[0].priority = 9

        queue.reorder_by_priority()

        assert self.drain_subjects(queue) == ["b", "a"]

    @pytest.mark.asyncio
    async def test_process_batch_returns_results_in_order(self, queue):
        for subject in ["a", "b", "c"]:
            queue.add(make_request(subject))

        async def processor(request):
            return request.subject.upper()

        results = await queue.process_batch(processor, batch_size=2)

        assert results == ["A", "B", "C"]
        assert queue.is_empty()
        assert not queue.is_processing()

    @pytest.mark.asyncio
    async def test_process_batch_accepts_sync_processor(self, queue):
        queue.add(make_request("a"))

        results = await queue.process_batch(lambda request: request.subject)

        assert results == ["a"]

    @pytest.mark.asyncio
    async def test_process_batch_limits_concurrency(self, queue):
        for index in range(5):
            queue.add(make_request(str(index)))
        in_flight = 0
        peak = 0

        async def processor(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return request.subject

        await queue.process_batch(processor, batch_size=2)

        assert peak == 2

    @pytest.mark.asyncio
    async def test_process_batch_captures_errors(self, queue):
        queue.add(make_request("good"))
        queue.add(make_request("bad"))

        async def processor(request):
            if request.subject == "bad":
                raise ValueError("cannot send")
            return request.subject

        results = await queue.process_batch(processor)

        assert results[0] == "good"
        assert isinstance(results[1], BatchItemError)
        assert str(results[1].error) == "cannot send"
        assert results[1].request.subject == "bad"
        assert not queue.is_processing()

    @pytest.mark.asyncio
    async def test_concurrent_batch_runs_rejected(self, queue):
        queue.add(make_request("a"))
        gate = asyncio.Event()

        async def processor(request):
            await gate.wait()
            return request.subject

        task = asyncio.create_task(queue.process_batch(processor))
        await asyncio.sleep(0)
        assert queue.is_processing()

        with pytest.raises(QueueBusyError):
            await queue.process_batch(processor)

        gate.set()
        assert await task == ["a"]
        assert not queue.is_processing()

    @pytest.mark.asyncio
    async def test_cancelled_batch_run_clears_processing_flag(self, queue):
        queue.add(make_request("a"))
        gate = asyncio.Event()

        async def processor(request):
            await gate.wait()
            return request.subject

        task = asyncio.create_task(queue.process_batch(processor))
        await asyncio.sleep(0)
        assert queue.is_processing()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not queue.is_processing()
        queue.add(make_request("b"))
        assert await queue.process_batch(lambda request: request.subject) == ["b"]
        assert not queue.is_processing()
