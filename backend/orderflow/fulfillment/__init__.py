"""
Order fulfillment processor.

Reconciles pending orders against the supplier's asynchronous delivery API.
"""

from orderflow.fulfillment.backoff import BackoffPolicy, calculate_backoff
from orderflow.fulfillment.completion import complete_order
from orderflow.fulfillment.credentials import (
    Credential,
    parse_credential,
    parse_credentials,
    serialize_credentials,
)
from orderflow.fulfillment.processor import (
    FulfillmentError,
    OrderFulfillmentProcessor,
    OrderNotRetryableError,
    TickSummary,
)
from orderflow.fulfillment.registry import FulfillmentJob, JobRegistry
from orderflow.fulfillment.worker import (
    Completed,
    Exhausted,
    OutcomeCategory,
    ReconciliationWorker,
    Retry,
)

__all__ = [
    # Processor
    "OrderFulfillmentProcessor",
    "TickSummary",
    "FulfillmentError",
    "OrderNotRetryableError",
    # Registry
    "FulfillmentJob",
    "JobRegistry",
    # Worker
    "ReconciliationWorker",
    "Completed",
    "Retry",
    "Exhausted",
    "OutcomeCategory",
    # Helpers
    "BackoffPolicy",
    "calculate_backoff",
    "Credential",
    "parse_credential",
    "parse_credentials",
    "serialize_credentials",
    "complete_order",
]
