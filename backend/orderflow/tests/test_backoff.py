"""
Tests for supplier reconciliation backoff.

Validates:
- Exponential growth from the base delay
- Cap on the exponential component
- Jitter stays within [0, max_jitter)
- Determinism with a seeded random source
"""

import random

import pytest

from orderflow.fulfillment.backoff import (
    BASE_DELAY_SECONDS,
    MAX_DELAY_SECONDS,
    MAX_JITTER_SECONDS,
    BackoffPolicy,
    base_delay,
    calculate_backoff,
)


class TestBackoffPolicy:
    """Tests for BackoffPolicy defaults."""

    def test_default_values(self):
        policy = BackoffPolicy()

        assert policy.base_delay_seconds == BASE_DELAY_SECONDS == 1.0
        assert policy.max_delay_seconds == MAX_DELAY_SECONDS == 30.0
        assert policy.max_jitter_seconds == MAX_JITTER_SECONDS == 1.0

    def test_ceiling_includes_jitter(self):
        assert BackoffPolicy().ceiling_seconds == 31.0


class TestBaseDelay:
    """Tests for the exponential component."""

    def test_attempt_zero_uses_base_delay(self):
        assert base_delay(0) == 1.0

    def test_doubles_per_attempt(self):
        assert [base_delay(n) for n in range(5)] == [1.0, 2.0, 4.0, 8.0, 16.0]

    def test_capped_at_max_delay(self):
        assert base_delay(5) == 30.0
        assert base_delay(14) == 30.0

    def test_huge_attempt_does_not_overflow(self):
        assert base_delay(10_000) == 30.0

    def test_non_decreasing(self):
        delays = [base_delay(n) for n in range(40)]
        assert delays == sorted(delays)

    def test_negative_attempt_rejected(self):
        with pytest.raises(ValueError, match="must not be negative"):
            base_delay(-1)

    def test_custom_policy(self):
        policy = BackoffPolicy(base_delay_seconds=0.5, max_delay_seconds=3.0)

        assert base_delay(0, policy) == 0.5
        assert base_delay(2, policy) == 2.0
        assert base_delay(3, policy) == 3.0


class TestCalculateBackoff:
    """Tests for backoff with jitter."""

    def test_first_retry_between_two_and_three_seconds(self):
        """Post-increment attempt 1 yields 2s plus jitter."""
        for seed in range(20):
            delay = calculate_backoff(1, rng=random.Random(seed))
            assert 2.0 <= delay < 3.0

    def test_never_exceeds_ceiling(self):
        rng = random.Random(7)
        policy = BackoffPolicy()

        for attempt in range(50):
            assert calculate_backoff(attempt, policy, rng) < policy.ceiling_seconds

    def test_deterministic_with_seed(self):
        first = [calculate_backoff(n, rng=random.Random(3)) for n in range(10)]
        second = [calculate_backoff(n, rng=random.Random(3)) for n in range(10)]

        assert first == second

    def test_zero_jitter_is_exact(self):
        policy = BackoffPolicy(max_jitter_seconds=0.0)

        assert calculate_backoff(3, policy) == 8.0

    def test_jitter_uses_random_value(self):
        class FixedRandom:
            def random(self):
                return 0.25

        assert calculate_backoff(0, rng=FixedRandom()) == 1.25
