"""
Backoff calculation for supplier reconciliation retries.

Backoff formula: min(base_delay * 2^attempt, max_delay) + jitter
where jitter is drawn uniformly from [0, max_jitter).

Callers pass the post-increment attempt count, so the first retry after
attempt 0 uses attempt=1.
"""

import random
from dataclasses import dataclass
from typing import Optional

# Backoff configuration constants
BASE_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 30.0
MAX_JITTER_SECONDS = 1.0

# 2^32 seconds already dwarfs any sane cap
_MAX_EXPONENT = 32


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Backoff policy configuration.

    Attributes:
        base_delay_seconds: Delay for attempt 0
        max_delay_seconds: Cap on the exponential component
        max_jitter_seconds: Upper bound (exclusive) of the jitter term
    """
    base_delay_seconds: float = BASE_DELAY_SECONDS
    max_delay_seconds: float = MAX_DELAY_SECONDS
    max_jitter_seconds: float = MAX_JITTER_SECONDS

    @property
    def ceiling_seconds(self) -> float:
        """Largest delay this policy can produce."""
        return self.max_delay_seconds + self.max_jitter_seconds


def base_delay(attempt: int, policy: BackoffPolicy = BackoffPolicy()) -> float:
    """
    Exponential component of the backoff, without jitter.

    Args:
        attempt: Attempt number (0-indexed, must not be negative)
        policy: Backoff policy configuration

    Returns:
        Delay in seconds, capped at policy.max_delay_seconds
    """
    if attempt < 0:
        raise ValueError(f"attempt must not be negative, got {attempt}")

    exponent = min(attempt, _MAX_EXPONENT)
    return min(policy.base_delay_seconds * (2 ** exponent), policy.max_delay_seconds)


def calculate_backoff(
    attempt: int,
    policy: BackoffPolicy = BackoffPolicy(),
    rng: Optional[random.Random] = None,
) -> float:
    """
    Calculate backoff delay with exponential growth and jitter.

    Args:
        attempt: Post-increment attempt count
        policy: Backoff policy configuration
        rng: Random source; pass a seeded random.Random for deterministic delays

    Returns:
        Delay in seconds before the next supplier call
    """
    delay = base_delay(attempt, policy)

    if policy.max_jitter_seconds > 0:
        source = rng if rng is not None else random
        # random() is in [0, 1), so the jitter never reaches max_jitter_seconds
        delay += source.random() * policy.max_jitter_seconds

    return delay
