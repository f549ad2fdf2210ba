"""
In-process registry of pending fulfillment jobs.

One live job per order_id. The registry is touched only from the event loop
that drives the scheduler, so it carries no locking of its own.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 15


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FulfillmentJob:
    """
    Reconciliation state for one order awaiting supplier delivery.

    Attributes:
        order_id: Local order identifier (registry key)
        upstream_reference: Supplier-side order id
        supplier_token: Credential scope for the supplier call
        attempts: Supplier calls already made and rescheduled
        max_attempts: Attempt budget before manual review
        next_retry_at: Earliest time the job may be picked up again
        created_at: When the job was enqueued
        last_error: Reason given by the last unsuccessful attempt
    """
    order_id: str
    upstream_reference: str
    supplier_token: str = field(repr=False)
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    next_retry_at: datetime = field(default_factory=utc_now)
    created_at: datetime = field(default_factory=utc_now)
    last_error: Optional[str] = None

    def __post_init__(self):
        if not self.order_id:
            raise ValueError("order_id is required")
        if not self.upstream_reference:
            raise ValueError("upstream_reference is required")
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if not 0 <= self.attempts <= self.max_attempts:
            raise ValueError(
                f"attempts must be within [0, {self.max_attempts}], got {self.attempts}"
            )

    @property
    def is_last_attempt(self) -> bool:
        """True if a failure now would consume the attempt budget."""
        return self.attempts >= self.max_attempts - 1

    def is_due(self, now: datetime) -> bool:
        return self.next_retry_at <= now

    def to_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "attempts": self.attempts,
            "nextRetryAt": self.next_retry_at.isoformat(),
            "createdAt": self.created_at.isoformat(),
        }


class JobRegistry:
    """Mutable collection of pending jobs keyed by order_id."""

    def __init__(self):
        self._jobs: Dict[str, FulfillmentJob] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._jobs

    def __iter__(self) -> Iterator[FulfillmentJob]:
        return iter(list(self._jobs.values()))

    def enqueue(self, job: FulfillmentJob) -> Optional[FulfillmentJob]:
        """
        Insert a job, replacing any live job for the same order.

        The replaced job's attempt history is not carried over.

        Returns:
            The replaced job, or None
        """
        previous = self._jobs.get(job.order_id)
        if previous is not None and previous is not job:
            logger.warning(
                "Replacing live fulfillment job",
                extra={
                    "order_id": job.order_id,
                    "previous_attempts": previous.attempts,
                    "previous_upstream_reference": previous.upstream_reference,
                    "upstream_reference": job.upstream_reference,
                },
            )
        self._jobs[job.order_id] = job
        return previous if previous is not job else None

    def remove(self, order_id: str) -> Optional[FulfillmentJob]:
        """Remove and return the job for order_id, if any."""
        return self._jobs.pop(order_id, None)

    def get(self, order_id: str) -> Optional[FulfillmentJob]:
        return self._jobs.get(order_id)

    def is_live(self, job: FulfillmentJob) -> bool:
        """True if this exact job object is still registered."""
        return self._jobs.get(job.order_id) is job

    def due_jobs(self, now: datetime, limit: int) -> List[FulfillmentJob]:
        """
        Jobs whose next_retry_at has elapsed.

        Args:
            now: Reference time
            limit: Maximum number of jobs to return

        Returns:
            Up to limit due jobs, in insertion order
        """
        if limit <= 0:
            return []

        due: List[FulfillmentJob] = []
        for job in self._jobs.values():
            if job.is_due(now):
                due.append(job)
                if len(due) >= limit:
                    break
        return due

    def snapshot(self) -> List[FulfillmentJob]:
        return list(self._jobs.values())

    def clear(self) -> None:
        self._jobs.clear()
