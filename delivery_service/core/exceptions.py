from typing import Optional


class DeliveryError(Exception):
    """Base class for delivery failures."""
    pass


class DeliveryValidationError(DeliveryError):
    """Raised by a backend when the request fails its validation rules."""
    pass


class TransientDeliveryError(DeliveryError):
    """Backend failure that may succeed on retry or on another backend."""
    pass


class RateLimitExceeded(DeliveryError):
    """Raised when the global send rate has been reached."""

    def __init__(self, retry_after_ms: float = 0, message: str = "Rate limit exceeded"):
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class CircuitOpenError(DeliveryError):
    """Raised when a call is rejected because the circuit is OPEN."""

    def __init__(self, retry_after_ms: float = 0, message: str = "Circuit breaker is OPEN"):
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class AllBackendsExhausted(DeliveryError):
    """Every backend was skipped or ran out of retries."""

    def __init__(self, all_skipped: bool, last_error: Optional[BaseException] = None):
        if all_skipped:
            message = "All backends unavailable"
        else:
            detail = str(last_error) if last_error else "Unknown error"
            message = f"All backends failed. Last error: {detail}"
        super().__init__(message)
        self.all_skipped = all_skipped
        self.last_error = last_error


class QueueBusyError(DeliveryError):
    """Raised when a queue batch run is already in progress."""

    def __init__(self, message: str = "Queue is already being processed"):
        super().__init__(message)
