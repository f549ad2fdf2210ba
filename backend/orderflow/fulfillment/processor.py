"""
Order fulfillment processor.

Polls the supplier for orders placed upstream but not yet delivered:

1. enqueue() registers one job per order as soon as the supplier accepts it
2. Every poll interval a tick picks up to batch_size due jobs and
   reconciles them concurrently
3. When the whole batch has settled, outcomes are applied one by one:
   delivered orders are completed and removed, transient failures are
   rescheduled with exponential backoff, exhausted jobs are dropped and
   their orders stay pending for manual review

CONSTRAINTS:
- Ticks never overlap: a tick that fires while another is running is
  skipped, so at most batch_size supplier calls are in flight
- Registry and tick guard are touched only from the event loop
- Jobs do not survive a restart; the worker process re-enqueues pending
  orders at boot
"""

import asyncio
import functools
import logging
import random
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Union

from orderflow.config.fulfillment import FulfillmentSettings, get_fulfillment_settings
from orderflow.fulfillment.backoff import BackoffPolicy, calculate_backoff
from orderflow.fulfillment.completion import complete_order
from orderflow.fulfillment.registry import FulfillmentJob, JobRegistry, utc_now
from orderflow.fulfillment.worker import (
    Completed,
    Exhausted,
    GatewayFactory,
    OutcomeCategory,
    Outcome,
    ReconciliationWorker,
    Retry,
)
from orderflow.integrations.supplier.client import get_supplier_gateway
from orderflow.models.order import OrderStatus
from orderflow.store.base import OrderStore, Record

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class FulfillmentError(Exception):
    """Base exception for fulfillment processor errors."""
    pass


class OrderNotRetryableError(FulfillmentError):
    """Order cannot be put back into the fulfillment queue."""
    pass


@dataclass
class TickSummary:
    """What a single tick did."""

    skipped: bool = False
    dispatched: int = 0
    completed: int = 0
    retried: int = 0
    exhausted: int = 0
    discarded: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class ProcessorTotals:
    """Cumulative statistics for the processor lifetime."""

    ticks: int = 0
    skipped_ticks: int = 0
    dispatched: int = 0
    completed: int = 0
    retried: int = 0
    exhausted: int = 0
    discarded: int = 0
    errors: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def add(self, summary: TickSummary) -> None:
        if summary.skipped:
            self.skipped_ticks += 1
            return
        self.ticks += 1
        self.dispatched += summary.dispatched
        self.completed += summary.completed
        self.retried += summary.retried
        self.exhausted += summary.exhausted
        self.discarded += summary.discarded
        self.errors += summary.errors

    def to_dict(self) -> dict:
        uptime = (datetime.now(timezone.utc) - self.started_at).total_seconds()
        return {
            "ticks": self.ticks,
            "skipped_ticks": self.skipped_ticks,
            "dispatched": self.dispatched,
            "completed": self.completed,
            "retried": self.retried,
            "exhausted": self.exhausted,
            "discarded": self.discarded,
            "errors": self.errors,
            "uptime_seconds": round(uptime, 2),
        }


class OrderFulfillmentProcessor:
    """
    Background scheduler reconciling pending orders with the supplier.

    Args:
        store: Order Store to complete orders in
        gateway_factory: Callable returning a SupplierGateway
            (default: get_supplier_gateway with these settings)
        settings: Processor settings (default: get_fulfillment_settings())
        backoff_policy: Override the policy derived from settings
        clock: Callable returning the current UTC time
        rng: Random source for backoff jitter
    """

    def __init__(
        self,
        store: OrderStore,
        gateway_factory: Optional[GatewayFactory] = None,
        settings: Optional[FulfillmentSettings] = None,
        backoff_policy: Optional[BackoffPolicy] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_fulfillment_settings()
        self.store = store
        self.registry = JobRegistry()
        self.backoff_policy = backoff_policy or self.settings.backoff_policy()
        self.totals = ProcessorTotals()

        if gateway_factory is None:
            gateway_factory = functools.partial(get_supplier_gateway, self.settings)
        self.worker = ReconciliationWorker(
            gateway_factory,
            timeout_seconds=self.settings.supplier_timeout_seconds,
        )

        self._clock = clock or utc_now
        self._rng = rng
        self._tick_in_progress = False
        self._ticker: Optional[asyncio.Task] = None
        self._current_tick: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Job submission
    # ------------------------------------------------------------------

    def enqueue(
        self,
        order_id: str,
        upstream_reference: str,
        credential_token: str,
    ) -> FulfillmentJob:
        """
        Register an order awaiting supplier delivery.

        Replaces any live job for the same order, restarting its attempt
        count.

        Args:
            order_id: Local order id
            upstream_reference: Supplier order id
            credential_token: Kiosk token scoping supplier calls

        Returns:
            The new job (due immediately)
        """
        now = self._clock()
        job = FulfillmentJob(
            order_id=order_id,
            upstream_reference=upstream_reference,
            supplier_token=credential_token,
            max_attempts=self.settings.max_attempts,
            next_retry_at=now,
            created_at=now,
        )
        self.registry.enqueue(job)

        logger.info(
            "Fulfillment job enqueued",
            extra={
                "order_id": order_id,
                "upstream_reference": upstream_reference,
                "max_attempts": job.max_attempts,
            },
        )
        return job

    def remove(self, order_id: str) -> bool:
        """
        Drop an order's job (e.g. manual cancellation).

        An in-flight supplier call is not cancelled; its result is discarded.

        Returns:
            True if a job was removed
        """
        removed = self.registry.remove(order_id) is not None
        if removed:
            logger.info("Fulfillment job removed", extra={"order_id": order_id})
        return removed

    def resolve_credential_token(self, order: Record) -> Optional[str]:
        """Kiosk token for an order: its option's token, else the default."""
        option_id = order.get("selected_option_id")
        product_id = order.get("product_id")
        if option_id and product_id:
            product = self.store.get_product(product_id)
            for option in (product or {}).get("options") or []:
                if option.get("id") == option_id and option.get("supplier_token"):
                    return option["supplier_token"]
        return self.settings.supplier_kiosk_token

    def retry_order(
        self,
        order_id: str,
        credential_token: Optional[str] = None,
    ) -> FulfillmentJob:
        """
        Put a still-pending order back into the queue (operator action).

        Raises:
            OrderNotRetryableError: If the order is missing, not pending,
                has no supplier reference, or no token can be resolved
        """
        order = self.store.get_order(order_id)
        if order is None:
            raise OrderNotRetryableError(f"Order {order_id} not found")
        if order.get("status") != OrderStatus.PENDING.value:
            raise OrderNotRetryableError(
                f"Only pending orders can be retried (order {order_id} is {order.get('status')})"
            )

        upstream_reference = order.get("upstream_order_id")
        if not upstream_reference:
            raise OrderNotRetryableError(f"Order {order_id} has no supplier order reference")

        token = credential_token or self.resolve_credential_token(order)
        if not token:
            raise OrderNotRetryableError(f"No supplier token available for order {order_id}")

        return self.enqueue(order_id, upstream_reference, token)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    @property
    def tick_in_progress(self) -> bool:
        return self._tick_in_progress

    async def tick(self) -> TickSummary:
        """
        Run one scheduling pass.

        Returns:
            TickSummary (skipped=True if another tick is still running)
        """
        if self._tick_in_progress:
            logger.debug("Fulfillment tick still in progress, skipping")
            summary = TickSummary(skipped=True)
            self.totals.add(summary)
            return summary

        self._tick_in_progress = True
        try:
            summary = await self._run_tick()
        finally:
            self._tick_in_progress = False

        self.totals.add(summary)
        return summary

    async def _run_tick(self) -> TickSummary:
        summary = TickSummary()
        jobs = self.registry.due_jobs(self._clock(), self.settings.batch_size)
        if not jobs:
            return summary

        summary.dispatched = len(jobs)
        logger.info("Processing fulfillment jobs", extra={"job_count": len(jobs)})

        results = await asyncio.gather(
            *(self.worker.reconcile(job) for job in jobs),
            return_exceptions=True,
        )

        now = self._clock()
        for job, result in zip(jobs, results):
            self._apply_outcome(job, result, summary, now)

        return summary

    def _outcome_for_exception(self, job: FulfillmentJob, error: BaseException) -> Outcome:
        logger.warning(
            "Reconciliation worker raised",
            extra={"order_id": job.order_id, "error": repr(error)},
        )
        reason = f"Worker error: {error!r}"
        if job.is_last_attempt:
            return Exhausted(reason=reason, category=OutcomeCategory.INFRASTRUCTURE)
        return Retry(reason=reason, category=OutcomeCategory.INFRASTRUCTURE)

    def _apply_outcome(
        self,
        job: FulfillmentJob,
        result: Union[Outcome, BaseException],
        summary: TickSummary,
        now: datetime,
    ) -> None:
        if not self.registry.is_live(job):
            # Removed or replaced while the supplier call was in flight
            summary.discarded += 1
            logger.info(
                "Discarding outcome for job no longer queued",
                extra={"order_id": job.order_id},
            )
            return

        if isinstance(result, BaseException):
            result = self._outcome_for_exception(job, result)

        if isinstance(result, Completed):
            self._complete(job, result, summary, now)
        elif isinstance(result, Exhausted):
            self._exhaust(job, result.reason, result.category, summary)
        elif isinstance(result, Retry):
            if job.attempts + 1 >= job.max_attempts:
                self._exhaust(job, result.reason, result.category, summary)
            else:
                self._reschedule(job, result, summary, now)
        else:
            self._apply_outcome(
                job,
                FulfillmentError(f"Unrecognized outcome: {result!r}"),
                summary,
                now,
            )

    def _complete(
        self,
        job: FulfillmentJob,
        outcome: Completed,
        summary: TickSummary,
        now: datetime,
    ) -> None:
        # Remove first: a failed side effect must never be replayed
        self.registry.remove(job.order_id)
        summary.completed += 1

        try:
            complete_order(self.store, job.order_id, outcome.credentials, now)
        except Exception:
            summary.errors += 1
            logger.exception(
                "Failed to apply order completion",
                extra={"order_id": job.order_id, "upstream_reference": job.upstream_reference},
            )
            return

        logger.info(
            "Order fulfilled",
            extra={
                "order_id": job.order_id,
                "attempts": job.attempts + 1,
                "credential_count": len(outcome.credentials),
            },
        )

    def _reschedule(
        self,
        job: FulfillmentJob,
        outcome: Retry,
        summary: TickSummary,
        now: datetime,
    ) -> None:
        job.attempts += 1
        delay = calculate_backoff(job.attempts, self.backoff_policy, self._rng)
        job.next_retry_at = now + timedelta(seconds=delay)
        job.last_error = outcome.reason
        summary.retried += 1

        logger.info(
            "Fulfillment retry scheduled",
            extra={
                "order_id": job.order_id,
                "attempts": job.attempts,
                "max_attempts": job.max_attempts,
                "delay_seconds": round(delay, 2),
                "category": outcome.category.value,
            },
        )

    def _exhaust(
        self,
        job: FulfillmentJob,
        reason: str,
        category: OutcomeCategory,
        summary: TickSummary,
    ) -> None:
        self.registry.remove(job.order_id)
        summary.exhausted += 1

        logger.error(
            "Fulfillment attempts exhausted, order left pending for manual review",
            extra={
                "order_id": job.order_id,
                "upstream_reference": job.upstream_reference,
                "attempts": job.attempts + 1,
                "max_attempts": job.max_attempts,
                "category": category.value,
                "reason": reason,
            },
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def start(self) -> None:
        """
        Start ticking every poll interval. Calling start twice is a no-op.

        Raises:
            RuntimeError: If called outside a running event loop
        """
        if self.is_running:
            return

        loop = asyncio.get_running_loop()
        self._ticker = loop.create_task(self._run_ticker(), name="order-fulfillment-ticker")

        logger.info(
            "Order fulfillment processor started",
            extra={
                "poll_interval_seconds": self.settings.poll_interval_seconds,
                "batch_size": self.settings.batch_size,
                "max_attempts": self.settings.max_attempts,
            },
        )

    async def stop(self, drain: bool = False) -> None:
        """
        Stop ticking. Safe to call when not running.

        Args:
            drain: Let an in-flight tick finish instead of cancelling it
        """
        ticker, self._ticker = self._ticker, None
        tick, self._current_tick = self._current_tick, None

        if ticker is None and tick is None:
            return

        pending: List[asyncio.Task] = []
        if ticker is not None:
            ticker.cancel()
            pending.append(ticker)
        if tick is not None and not tick.done():
            if not drain:
                tick.cancel()
            pending.append(tick)

        await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Order fulfillment processor stopped", extra=self.totals.to_dict())

    async def _run_ticker(self) -> None:
        interval = self.settings.poll_interval_seconds
        while True:
            await asyncio.sleep(interval)
            if self._tick_in_progress:
                logger.debug("Fulfillment tick still in progress, skipping")
                self.totals.add(TickSummary(skipped=True))
                continue
            self._current_tick = asyncio.create_task(self._guarded_tick())

    async def _guarded_tick(self) -> None:
        try:
            await self.tick()
        except Exception:
            logger.exception("Error in fulfillment processing loop")

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def job_status(self, order_id: str) -> Optional[Dict]:
        """Queue state for one order, or None if it is not queued."""
        job = self.registry.get(order_id)
        if job is None:
            return None
        status = job.to_dict()
        status["maxAttempts"] = job.max_attempts
        status["tickInProgress"] = self._tick_in_progress
        return status

    def stats(self) -> Dict:
        """Read-only snapshot for the admin status view."""
        return {
            "activeJobCount": len(self.registry),
            "tickInProgress": self._tick_in_progress,
            "jobs": [job.to_dict() for job in self.registry.snapshot()],
        }
