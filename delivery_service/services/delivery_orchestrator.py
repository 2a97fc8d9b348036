"""Delivery orchestrator.

Combines idempotency, rate limiting, per-backend circuit breaking, retry with
exponential backoff and backend fallback into a single pipeline per message.

All shared state is owned by the event loop: each structure is mutated
without an intervening ``await``, so a single structure's update is atomic
with respect to other coroutines. The ``send`` pipeline as a whole is not.
Two concurrent sends with the same id can both pass the idempotency check
before either finishes, and both will deliver.
"""

import asyncio
import hashlib
import time
from functools import partial
from typing import Awaitable, Callable, Dict, Iterator, List, Optional, Sequence, Set

from delivery_service.core.circuit_breaker import CircuitBreaker, CircuitState
from delivery_service.core.config import Settings, settings as default_settings
from delivery_service.core.delivery_policies import (
    RetryPolicy, compute_backoff, get_policy, policy_from_settings
)
from delivery_service.core.exceptions import (
    AllBackendsExhausted, DeliveryValidationError, RateLimitExceeded
)
from delivery_service.core.logging import ContextLogger, LogBuffer
from delivery_service.core.rate_limiter import RateLimiter
from delivery_service.schemas.delivery import (
    AttemptStatus, DeliveryAttempt, DeliveryRecord, DeliveryRequest,
    DeliveryStatus, SendResult, utc_now_iso
)
from delivery_service.schemas.health import (
    HealthSnapshot, ProviderHealth, QueueHealth, RateLimiterHealth
)
from .backends import (
    DeliveryBackend, WebhookBackend, primary_mock_backend, secondary_mock_backend
)
from .base_service import BaseService
from .dispatch_queue import DispatchQueue


class BackendSelector:
    """Remembers which backend last succeeded and starts the next rotation there."""

    def __init__(self, backend_count: int):
        self.backend_count = backend_count
        self.current_index = 0

    def order(self) -> Iterator[int]:
        # Fixed at the start so a concurrent success cannot skew this rotation
        start = self.current_index
        return iter([(start + offset) % self.backend_count for offset in range(self.backend_count)])

    def mark_success(self, index: int):
        self.current_index = index

    def reset(self):
        self.current_index = 0


class DeliveryOrchestrator(BaseService):
    """Resilient delivery across several interchangeable backends."""

    def __init__(
        self,
        backends: Sequence[DeliveryBackend],
        policy: Optional[RetryPolicy] = None,
        rate_limiter: Optional[RateLimiter] = None,
        queue: Optional[DispatchQueue] = None,
        circuit_threshold: int = 5,
        circuit_timeout_ms: int = 60000,
        retry_validation_errors: bool = True,
        logger: Optional[ContextLogger] = None,
        log_buffer: Optional[LogBuffer] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Optional[Callable[[], float]] = None,
    ):
        super().__init__(logger=logger, log_buffer=log_buffer)
        if not backends:
            raise ValueError("At least one delivery backend is required")

        self.backends: List[DeliveryBackend] = list(backends)
        self.policy = policy or get_policy(None)
        self.retry_validation_errors = retry_validation_errors
        self._sleep = sleep

        breaker_kwargs = {"clock": clock} if clock else {}
        self.circuit_breakers: List[CircuitBreaker] = [
            CircuitBreaker(
                threshold=circuit_threshold,
                timeout_ms=circuit_timeout_ms,
                on_state_change=self._state_change_listener(backend.name),
                **breaker_kwargs,
            )
            for backend in self.backends
        ]

        limiter_kwargs = {"clock": clock} if clock else {}
        self.rate_limiter = rate_limiter or RateLimiter(100, 60000, **limiter_kwargs)
        self.queue = queue or DispatchQueue(logger=self.logger)
        self.selector = BackendSelector(len(self.backends))

        self.sent_ids: Set[str] = set()
        self.records: Dict[str, DeliveryRecord] = {}

        self.logger.info(
            "DeliveryOrchestrator initialized",
            providers=[backend.name for backend in self.backends]
        )

    def _state_change_listener(self, name: str) -> Callable[[CircuitState], None]:
        def listener(state: CircuitState):
            self.logger.info(f"Circuit breaker for {name} changed to: {state.value}", provider=name)
        return listener

    @staticmethod
    def generate_id(request: DeliveryRequest) -> str:
        """Derive an id from the message content and the current time."""
        content = f"{request.to}-{request.subject}-{request.body}-{time.time_ns()}"
        return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]

    def resolve_id(self, request: DeliveryRequest) -> str:
        return request.id or self.generate_id(request)

    async def send(self, request: DeliveryRequest) -> DeliveryRecord:
        """
        Send a message through the resilience pipeline.

        Never raises for delivery problems; the outcome, including every
        attempt, is captured in the returned record.
        """
        message_id = self.resolve_id(request)

        if message_id in self.sent_ids:
            self.logger.warning(f"Message {message_id} already sent (idempotency check)")
            return DeliveryRecord(
                id=message_id,
                status=DeliveryStatus.ALREADY_SENT,
                success=True,
                message="Message already sent (idempotency check)",
            )

        try:
            self.rate_limiter.acquire()
        except RateLimitExceeded as e:
            record = DeliveryRecord(
                id=message_id,
                status=DeliveryStatus.RATE_LIMITED,
                success=False,
                message=str(e),
            )
            self.records[message_id] = record
            self.logger.warning(f"Message {message_id} rate limited", retry_after_ms=e.retry_after_ms)
            return record

        record = DeliveryRecord(id=message_id, status=DeliveryStatus.PROCESSING)
        self.records[message_id] = record
        self.logger.info(f"Starting delivery for {message_id}")

        try:
            result = await self._send_with_retry_and_fallback(request, record)
        except AllBackendsExhausted as e:
            record.status = DeliveryStatus.FAILED
            record.success = False
            record.message = str(e)
            record.timestamp = utc_now_iso()
            self.records[message_id] = record
            self.logger.error(f"Message {message_id} failed", error=str(e), attempts=len(record.attempts))
            return record

        self.sent_ids.add(message_id)
        record.status = DeliveryStatus.SENT
        record.success = True
        record.provider = result.provider
        record.message_id = result.message_id
        record.message = f"Message sent successfully via {result.provider}"
        record.timestamp = utc_now_iso()
        self.records[message_id] = record
        self.logger.info(f"Message {message_id} sent successfully", provider=result.provider)
        return record

    async def _send_with_retry_and_fallback(self, request: DeliveryRequest, record: DeliveryRecord) -> SendResult:
        last_error: Optional[BaseException] = None
        all_skipped = True

        for index in self.selector.order():
            backend = self.backends[index]
            breaker = self.circuit_breakers[index]

            if breaker.is_open():
                record.attempts.append(DeliveryAttempt(
                    provider=backend.name,
                    attempt=1,
                    status=AttemptStatus.SKIPPED,
                    error="circuit open",
                ))
                self.logger.warning(f"Skipping {backend.name} - circuit breaker is open")
                continue

            all_skipped = False
            self.logger.info(f"Attempting to send {record.id} with {backend.name}")

            for attempt in range(1, self.policy.max_retries + 1):
                entry = DeliveryAttempt(provider=backend.name, attempt=attempt)
                record.attempts.append(entry)

                try:
                    result = await breaker.call(partial(backend.send, request))
                except Exception as e:
                    last_error = e
                    record.attempts[-1] = entry.model_copy(
                        update={"status": AttemptStatus.FAILED, "error": str(e)}
                    )
                    self.logger.warning(f"Attempt {attempt} failed for {backend.name}", error=str(e))

                    if isinstance(e, DeliveryValidationError) and not self.retry_validation_errors:
                        break

                    if attempt < self.policy.max_retries:
                        delay = compute_backoff(self.policy, attempt)
                        self.logger.info(f"Waiting {delay}ms before retry...")
                        await self._sleep(delay / 1000.0)
                    continue

                record.attempts[-1] = entry.model_copy(update={"status": AttemptStatus.SUCCESS})
                self.selector.mark_success(index)
                return result

            self.logger.warning(f"All attempts failed for {backend.name}, trying next provider...")

        raise AllBackendsExhausted(all_skipped=all_skipped, last_error=last_error)

    def enqueue(self, request: DeliveryRequest, priority: int = 0) -> str:
        """Queue a message for later delivery and return its id."""
        message_id = self.resolve_id(request)
        if request.id != message_id:
            request = request.model_copy(update={"id": message_id})
        self.queue.add(request, priority=priority)
        self.logger.info(f"Message {message_id} added to queue")
        return message_id

    async def drain_queue(self) -> int:
        """Send queued messages one at a time until the queue is empty."""
        self.logger.info("Processing delivery queue...")
        processed = 0

        while not self.queue.is_empty():
            request = self.queue.next()
            if request is None:
                continue
            try:
                await self.send(request)
            except Exception as e:
                self.logger.error(f"Error processing queued message: {e}", id=request.id)
            processed += 1

        self.logger.info("Delivery queue processing completed", processed=processed)
        return processed

    async def process_queue_concurrently(self, batch_size: int = 5) -> List[object]:
        """Drain the queue with up to ``batch_size`` sends in flight."""
        return await self.queue.process_batch(self.send, batch_size=batch_size)

    def status(self, message_id: str) -> Optional[DeliveryRecord]:
        return self.records.get(message_id)

    def all_statuses(self) -> List[DeliveryRecord]:
        return list(self.records.values())

    def health(self) -> HealthSnapshot:
        return HealthSnapshot(
            providers=[
                ProviderHealth(
                    name=backend.name,
                    circuit_state=breaker.state,
                    healthy=not breaker.is_open(),
                )
                for backend, breaker in zip(self.backends, self.circuit_breakers)
            ],
            rate_limiter=RateLimiterHealth(
                requests_in_window=self.rate_limiter.request_count(),
                limit=self.rate_limiter.limit,
                window_ms=self.rate_limiter.window_ms,
            ),
            queue=QueueHealth(size=self.queue.size(), is_empty=self.queue.is_empty()),
            total_sent=len(self.sent_ids),
            total_tracked=len(self.records),
        )

    def reset(self):
        """Clear all delivery state."""
        self.sent_ids.clear()
        self.records.clear()
        for breaker in self.circuit_breakers:
            breaker.reset()
        self.rate_limiter.reset()
        self.queue.clear()
        self.selector.reset()
        self.logger.info("DeliveryOrchestrator reset completed")


def build_backends(config: Settings) -> List[DeliveryBackend]:
    backends: List[DeliveryBackend] = []
    if config.MOCK_BACKENDS_ENABLED:
        backends.append(primary_mock_backend(failure_rate=config.MOCK_PRIMARY_FAILURE_RATE))
        backends.append(secondary_mock_backend(failure_rate=config.MOCK_SECONDARY_FAILURE_RATE))

    for position, url in enumerate(config.WEBHOOK_BACKEND_URLS, start=1):
        backends.append(WebhookBackend(
            name=f"Webhook{position}",
            url=url,
            signing_secret=config.WEBHOOK_SIGNING_SECRET,
            timeout=config.WEBHOOK_TIMEOUT_SECONDS,
        ))
    return backends


def create_delivery_orchestrator(
    config: Optional[Settings] = None,
    profile: Optional[str] = None,
    backends: Optional[Sequence[DeliveryBackend]] = None,
    log_buffer: Optional[LogBuffer] = None,
) -> DeliveryOrchestrator:
    """Build an orchestrator from settings, optionally forcing a retry profile."""
    config = config or default_settings
    policy = get_policy(profile) if profile else policy_from_settings(config)

    return DeliveryOrchestrator(
        backends=list(backends) if backends is not None else build_backends(config),
        policy=policy,
        rate_limiter=RateLimiter(config.RATE_LIMIT, config.RATE_LIMIT_WINDOW_MS),
        circuit_threshold=config.CIRCUIT_BREAKER_THRESHOLD,
        circuit_timeout_ms=config.CIRCUIT_BREAKER_TIMEOUT_MS,
        retry_validation_errors=config.RETRY_VALIDATION_ERRORS,
        log_buffer=log_buffer or LogBuffer(max_logs=config.LOG_BUFFER_SIZE, level=config.LOG_LEVEL),
    )
