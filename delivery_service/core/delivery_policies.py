from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int
    initial_delay_ms: int
    max_delay_ms: int

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")


DEFAULT_POLICY = RetryPolicy(
    max_retries=3,
    initial_delay_ms=1000,
    max_delay_ms=30000,
)


DELIVERY_POLICIES: Dict[str, RetryPolicy] = {
    "development": RetryPolicy(
        max_retries=2,
        initial_delay_ms=500,
        max_delay_ms=5000,
    ),
    "production": DEFAULT_POLICY,
    "high_volume": RetryPolicy(
        max_retries=1,
        initial_delay_ms=200,
        max_delay_ms=2000,
    ),
}


def get_policy(name: Optional[str]) -> RetryPolicy:
    """Look up a named profile, raising KeyError for unknown names."""
    if name is None:
        return DEFAULT_POLICY
    try:
        return DELIVERY_POLICIES[name]
    except KeyError:
        raise KeyError(f"Unknown delivery profile: {name}") from None


def policy_from_settings(settings) -> RetryPolicy:
    if settings.DELIVERY_PROFILE:
        return get_policy(settings.DELIVERY_PROFILE)
    return RetryPolicy(
        max_retries=settings.MAX_RETRIES,
        initial_delay_ms=settings.INITIAL_RETRY_DELAY_MS,
        max_delay_ms=settings.MAX_RETRY_DELAY_MS,
    )


def compute_backoff(policy: RetryPolicy, attempt: int) -> int:
    """Delay in ms before retrying after the given 1-based attempt."""
    delay = policy.initial_delay_ms * (2 ** max(0, attempt - 1))
    return min(delay, policy.max_delay_ms)
