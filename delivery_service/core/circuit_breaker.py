"""Circuit breaker for delivery backends.

Stops calling a backend after repeated consecutive failures, then lets a
single trial call through once the recovery timeout has elapsed.
"""

import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .exceptions import CircuitOpenError
from .rate_limiter import monotonic_ms


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


Operation = Callable[[], Union[Any, Awaitable[Any]]]


class CircuitBreaker:
    """Per-backend failure state machine."""

    def __init__(
        self,
        threshold: int = 5,
        timeout_ms: int = 60000,
        on_state_change: Optional[Callable[[CircuitState], None]] = None,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self.threshold = threshold
        self.timeout_ms = timeout_ms
        self.on_state_change = on_state_change
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.next_attempt_at: Optional[float] = None

    def _transition(self, state: CircuitState):
        self.state = state
        if self.on_state_change:
            self.on_state_change(state)

    async def call(self, operation: Operation) -> Any:
        """Run ``operation`` under breaker protection.

        Raises CircuitOpenError without invoking the operation while the
        circuit is OPEN; otherwise re-raises whatever the operation raised.
        """
        if self.state == CircuitState.OPEN:
            if self._clock() < self.next_attempt_at:
                raise CircuitOpenError(retry_after_ms=self.time_until_next_attempt())
            self._transition(CircuitState.HALF_OPEN)

        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _on_success(self):
        if self.state == CircuitState.HALF_OPEN:
            self.failure_count = 0
            self._transition(CircuitState.CLOSED)
        elif self.state == CircuitState.CLOSED:
            self.failure_count = 0

    def _on_failure(self):
        now = self._clock()
        self.failure_count += 1
        self.last_failure_time = now

        # A failed trial call reopens at once.
        if self.state == CircuitState.HALF_OPEN or (
            self.state == CircuitState.CLOSED and self.failure_count >= self.threshold
        ):
            self.next_attempt_at = now + self.timeout_ms
            self._transition(CircuitState.OPEN)

    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN and self._clock() < self.next_attempt_at

    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED

    def is_half_open(self) -> bool:
        return self.state == CircuitState.HALF_OPEN

    def time_until_next_attempt(self) -> float:
        if self.state != CircuitState.OPEN:
            return 0
        return max(0, self.next_attempt_at - self._clock())

    def reset(self):
        """Force the circuit CLOSED and clear counters and timers."""
        self.failure_count = 0
        self.last_failure_time = None
        self.next_attempt_at = None
        self._transition(CircuitState.CLOSED)

    def stats(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "threshold": self.threshold,
            "timeout_ms": self.timeout_ms,
            "last_failure_time": self.last_failure_time,
            "next_attempt_at": self.next_attempt_at,
            "time_until_next_attempt": self.time_until_next_attempt(),
        }
