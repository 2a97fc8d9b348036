"""
Pytest configuration and fixtures for delivery service tests.
"""
import pytest
from typing import Sequence
from unittest.mock import AsyncMock

from delivery_service.core.delivery_policies import RetryPolicy
from delivery_service.core.logging import LogBuffer
from delivery_service.core.rate_limiter import RateLimiter
from delivery_service.schemas.delivery import DeliveryRequest
from delivery_service.services.backends.base import DeliveryBackend
from delivery_service.services.delivery_orchestrator import DeliveryOrchestrator
from support import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_sleep():
    """Replaces asyncio.sleep for backoff waits."""
    return AsyncMock()


@pytest.fixture
def log_buffer():
    return LogBuffer(max_logs=500, level="DEBUG")


@pytest.fixture
def sample_request():
    """Sample message with an explicit id."""
    return DeliveryRequest(
        to="test@example.com",
        subject="Test Subject",
        body="Test body",
        id="msg-1"
    )


@pytest.fixture
def make_orchestrator(clock, mock_sleep, log_buffer):
    """Factory building an orchestrator with deterministic time."""

    def factory(
        backends: Sequence[DeliveryBackend],
        max_retries: int = 3,
        initial_delay_ms: int = 100,
        max_delay_ms: int = 1000,
        rate_limit: int = 100,
        rate_window_ms: int = 60000,
        **kwargs,
    ) -> DeliveryOrchestrator:
        return DeliveryOrchestrator(
            backends=backends,
            policy=RetryPolicy(
                max_retries=max_retries,
                initial_delay_ms=initial_delay_ms,
                max_delay_ms=max_delay_ms,
            ),
            rate_limiter=RateLimiter(rate_limit, rate_window_ms, clock=clock),
            sleep=mock_sleep,
            clock=clock,
            log_buffer=log_buffer,
            **kwargs,
        )

    return factory
