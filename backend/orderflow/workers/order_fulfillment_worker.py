"""
Order fulfillment worker: long-lived background process driving the
OrderFulfillmentProcessor against the application database.

At boot:
1. Loads settings (config/order_fulfillment.yml + environment)
2. Re-enqueues every pending order that has a supplier reference, since
   jobs live only in memory and are lost on restart
3. Starts the processor tick loop

CONSTRAINTS:
- Single process; running two workers against one database double-polls
  the supplier (completion stays idempotent per process only)
- Graceful shutdown on SIGTERM/SIGINT lets the in-flight tick finish

Usage:
    python -m orderflow.workers.order_fulfillment_worker
"""

import sys
import signal
import asyncio
import logging
import os

from orderflow.config.fulfillment import FulfillmentSettings, get_fulfillment_settings
from orderflow.fulfillment.processor import OrderFulfillmentProcessor
from orderflow.models.order import OrderStatus
from orderflow.store.base import OrderStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

STATUS_LOG_INTERVAL_SECONDS = int(
    os.getenv("FULFILLMENT_STATUS_LOG_INTERVAL_SECONDS", "60")
)


def recover_pending_orders(processor: OrderFulfillmentProcessor, store: OrderStore) -> int:
    """
    Enqueue every pending order awaiting supplier delivery.

    Orders without a supplier reference never reached the supplier and are
    skipped, as are orders whose kiosk token cannot be resolved.

    Returns:
        Number of orders enqueued
    """
    recovered = 0
    for order in store.list_orders(status=OrderStatus.PENDING.value):
        upstream_reference = order.get("upstream_order_id")
        if not upstream_reference:
            continue

        token = processor.resolve_credential_token(order)
        if not token:
            logger.warning(
                "No supplier token for pending order, leaving for manual review",
                extra={"order_id": order["id"]},
            )
            continue

        processor.enqueue(order["id"], upstream_reference, token)
        recovered += 1

    logger.info("Pending orders recovered", extra={"recovered": recovered})
    return recovered


def build_store() -> OrderStore:
    """SQL-backed Order Store over DATABASE_URL."""
    from orderflow.database.session import get_session_factory
    from orderflow.store.sql import SqlOrderStore

    return SqlOrderStore(get_session_factory())


async def run_worker(settings: FulfillmentSettings = None, store: OrderStore = None) -> None:
    """
    Main worker loop. Runs until SIGTERM/SIGINT.
    """
    settings = settings or get_fulfillment_settings()
    store = store or build_store()
    processor = OrderFulfillmentProcessor(store, settings=settings)
    shutdown_event = asyncio.Event()

    def _handle_signal(sig, _frame):
        logger.info("Received signal %s, shutting down gracefully", sig)
        shutdown_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    logger.info(
        "Order fulfillment worker starting",
        extra={
            "poll_interval_seconds": settings.poll_interval_seconds,
            "batch_size": settings.batch_size,
            "supplier_mock_mode": settings.supplier_mock_mode,
        },
    )

    recover_pending_orders(processor, store)
    processor.start()

    try:
        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    shutdown_event.wait(),
                    timeout=STATUS_LOG_INTERVAL_SECONDS,
                )
            except asyncio.TimeoutError:
                stats = processor.stats()
                logger.info(
                    "Order fulfillment status",
                    extra={
                        "active_jobs": stats["activeJobCount"],
                        "tick_in_progress": stats["tickInProgress"],
                    },
                )
    finally:
        await processor.stop(drain=True)

    logger.info("Order fulfillment worker stopped")


def main():
    """Entry point for running worker from command line."""
    try:
        asyncio.run(run_worker())
        sys.exit(0)
    except Exception as e:
        logger.error("Order fulfillment worker crashed", extra={"error": str(e)})
        sys.exit(1)


if __name__ == "__main__":
    main()
