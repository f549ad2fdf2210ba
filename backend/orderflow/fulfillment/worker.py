"""
Reconciliation worker: one supplier call for one fulfillment job.

Classifies the supplier's answer into a closed set of outcomes:
- Completed: items delivered and parsed into credentials
- Retry: not delivered yet, or a transient failure, with budget left
- Exhausted: not delivered and the attempt budget is spent

The supplier offers no way to tell "will never succeed" from a transient
blip, so every failure is retried until the budget runs out and the order
is left for manual review.

reconcile() never raises; only task cancellation propagates.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Tuple, Union

from orderflow.fulfillment.credentials import Credential, parse_credentials
from orderflow.fulfillment.registry import FulfillmentJob
from orderflow.integrations.supplier.client import SupplierGateway
from orderflow.integrations.supplier.exceptions import SupplierError
from orderflow.integrations.supplier.models import (
    Delivered,
    Failed,
    FulfillmentResult,
    StillProcessing,
)

logger = logging.getLogger(__name__)

DEFAULT_SUPPLIER_TIMEOUT_SECONDS = 10.0

GatewayFactory = Callable[[], SupplierGateway]


class OutcomeCategory(str, Enum):
    """Why a job was not completed."""
    PROCESSING = "processing"  # supplier says not ready yet
    INFRASTRUCTURE = "infrastructure"  # timeout, network, malformed body
    UNCLASSIFIED = "unclassified"  # any other non-success answer


@dataclass(frozen=True)
class Completed:
    credentials: Tuple[Credential, ...]


@dataclass(frozen=True)
class Retry:
    reason: str
    category: OutcomeCategory


@dataclass(frozen=True)
class Exhausted:
    reason: str
    category: OutcomeCategory


Outcome = Union[Completed, Retry, Exhausted]


class ReconciliationWorker:
    """
    Performs a single supplier reconciliation for a job.

    Args:
        gateway_factory: Callable returning a SupplierGateway; the gateway
            is closed after each call
        timeout_seconds: Hard timeout around the whole supplier call
    """

    def __init__(
        self,
        gateway_factory: GatewayFactory,
        timeout_seconds: float = DEFAULT_SUPPLIER_TIMEOUT_SECONDS,
    ):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._gateway_factory = gateway_factory
        self.timeout_seconds = timeout_seconds

    async def _fetch(self, job: FulfillmentJob) -> FulfillmentResult:
        gateway = self._gateway_factory()
        async with gateway:
            return await gateway.fetch_fulfillment(
                job.upstream_reference,
                job.supplier_token,
            )

    def _not_completed(
        self,
        job: FulfillmentJob,
        reason: str,
        category: OutcomeCategory,
    ) -> Outcome:
        if job.is_last_attempt:
            return Exhausted(reason=reason, category=category)

        log_extra = {
            "order_id": job.order_id,
            "upstream_reference": job.upstream_reference,
            "attempts": job.attempts,
            "max_attempts": job.max_attempts,
            "category": category.value,
            "reason": reason,
        }
        if category == OutcomeCategory.PROCESSING:
            logger.debug("Supplier order still processing", extra=log_extra)
        else:
            logger.warning("Supplier reconciliation failed, will retry", extra=log_extra)

        return Retry(reason=reason, category=category)

    async def reconcile(self, job: FulfillmentJob) -> Outcome:
        """
        Run one reconciliation attempt.

        Args:
            job: Job to reconcile (not mutated)

        Returns:
            Completed, Retry or Exhausted
        """
        try:
            result = await asyncio.wait_for(self._fetch(job), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            return self._not_completed(
                job,
                f"Supplier call timed out after {self.timeout_seconds:g}s",
                OutcomeCategory.INFRASTRUCTURE,
            )
        except SupplierError as e:
            return self._not_completed(
                job,
                f"{e.__class__.__name__}: {e.reason}",
                OutcomeCategory.INFRASTRUCTURE,
            )
        except Exception as e:
            logger.exception(
                "Unexpected error during supplier reconciliation",
                extra={"order_id": job.order_id},
            )
            return self._not_completed(
                job,
                f"Unexpected error: {e!r}",
                OutcomeCategory.INFRASTRUCTURE,
            )

        if isinstance(result, Delivered) and result.items:
            return Completed(credentials=tuple(parse_credentials(result.items)))

        if isinstance(result, StillProcessing):
            return self._not_completed(job, result.description, OutcomeCategory.PROCESSING)

        if isinstance(result, Failed):
            return self._not_completed(job, result.reason, OutcomeCategory.UNCLASSIFIED)

        return self._not_completed(
            job,
            f"Unrecognized supplier result: {result!r}",
            OutcomeCategory.UNCLASSIFIED,
        )
