"""
Order completion side effects.

Applied once per delivered order, in order:
1. Serialize parsed credentials into the delivery payload
2. Mark the order completed with the payload attached
3. Decrement option or product stock by the order quantity, floored at zero
4. Increment the product's sold counter

Steps 3-4 use the store's atomic record_sale() when it offers one.
Otherwise they read then write the product record, which can
under-decrement stock when concurrent orders for the same product complete
through different processes.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from orderflow.fulfillment.credentials import Credential, serialize_credentials
from orderflow.models.order import OrderStatus
from orderflow.store.base import InventoryStore, OrderStore, Record

logger = logging.getLogger(__name__)


def _order_quantity(order: Record) -> int:
    quantity = order.get("quantity")
    return int(quantity) if quantity is not None else 1


def _inventory_patch(product: Record, option_id: Optional[str], quantity: int) -> Record:
    patch: Record = {"sold": (product.get("sold") or 0) + quantity}

    options = product.get("options") or []
    if options and option_id:
        patch["options"] = [
            {**option, "stock": max(0, (option.get("stock") or 0) - quantity)}
            if option.get("id") == option_id
            else option
            for option in options
        ]
    elif product.get("stock") is not None:
        patch["stock"] = max(0, product["stock"] - quantity)

    return patch


def update_inventory(store: OrderStore, order: Record) -> bool:
    """
    Apply the stock decrement and sold increment for a completed order.

    Returns:
        True if the product was found and updated
    """
    product_id = order.get("product_id")
    if not product_id:
        logger.warning("Completed order has no product", extra={"order_id": order.get("id")})
        return False

    quantity = _order_quantity(order)
    option_id = order.get("selected_option_id")

    if isinstance(store, InventoryStore):
        updated = store.record_sale(product_id, option_id, quantity)
    else:
        product = store.get_product(product_id)
        updated = product is not None and store.update_product(
            product_id, _inventory_patch(product, option_id, quantity)
        ) is not None

    if not updated:
        logger.warning(
            "Product not found while recording sale",
            extra={"order_id": order.get("id"), "product_id": product_id},
        )
    return updated


def complete_order(
    store: OrderStore,
    order_id: str,
    credentials: Iterable[Credential],
    now: datetime,
) -> bool:
    """
    Mark an order completed and record the sale.

    Args:
        store: Order Store
        order_id: Order to complete
        credentials: Parsed delivered items
        now: Completion timestamp

    Returns:
        True if the order exists and was marked completed
    """
    delivery_info = serialize_credentials(credentials)

    order = store.update_order(
        order_id,
        {
            "status": OrderStatus.COMPLETED.value,
            "updated_at": now,
            "completed_at": now,
            "delivery_info": delivery_info,
        },
    )
    if order is None:
        logger.error("Delivered order not found in store", extra={"order_id": order_id})
        return False

    update_inventory(store, order)
    return True
