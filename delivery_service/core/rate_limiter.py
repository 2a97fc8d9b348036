import time
from collections import deque
from typing import Any, Callable, Deque, Dict

from .exceptions import RateLimitExceeded


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class RateLimiter:
    """Sliding-window rate limiter.

    Keeps the timestamps of admitted requests and admits a new one only while
    fewer than ``limit`` of them fall inside the trailing ``window_ms``.
    """

    def __init__(self, limit: int, window_ms: int, clock: Callable[[], float] = monotonic_ms):
        self.limit = limit
        self.window_ms = window_ms
        self._clock = clock
        self._requests: Deque[float] = deque()

    def _cleanup(self, now: float):
        window_start = now - self.window_ms
        while self._requests and self._requests[0] <= window_start:
            self._requests.popleft()

    def allow_request(self) -> bool:
        """Admit and record a request if the window has capacity."""
        now = self._clock()
        self._cleanup(now)

        if len(self._requests) < self.limit:
            self._requests.append(now)
            return True
        return False

    def acquire(self):
        """Like allow_request, but raises RateLimitExceeded when denied."""
        if not self.allow_request():
            raise RateLimitExceeded(retry_after_ms=self.time_until_reset())

    def request_count(self) -> int:
        self._cleanup(self._clock())
        return len(self._requests)

    def remaining(self) -> int:
        return max(0, self.limit - self.request_count())

    def time_until_reset(self) -> float:
        """Milliseconds until the oldest admitted request leaves the window."""
        if not self._requests:
            return 0
        window_end = self._requests[0] + self.window_ms
        return max(0, window_end - self._clock())

    def is_limit_exceeded(self) -> bool:
        return self.request_count() >= self.limit

    def configure(self, limit: int, window_ms: int):
        """Replace the limits; history is kept and re-filtered on the next call."""
        self.limit = limit
        self.window_ms = window_ms

    def reset(self):
        self._requests.clear()

    def stats(self) -> Dict[str, Any]:
        count = self.request_count()
        utilization = round(count / self.limit * 100) if self.limit > 0 else 100
        return {
            "limit": self.limit,
            "window_ms": self.window_ms,
            "current_requests": count,
            "remaining_requests": self.remaining(),
            "is_limit_exceeded": self.is_limit_exceeded(),
            "time_until_reset": self.time_until_reset(),
            "utilization_percentage": utilization,
        }
