"""
Order Store contract consumed by the fulfillment processor.

Records are plain dicts with snake_case keys. Each call is atomic for the
single record it touches; there are no cross-call transactions.

Order keys: id, user_id, product_id, quantity, status, selected_option_id,
upstream_order_id, delivery_info, created_at, updated_at, completed_at

Product keys: id, title, stock (None = untracked), sold,
options: [{id, name, stock, supplier_token}]
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

Record = Dict[str, Any]


class OrderStore(ABC):
    """Abstract key-value store of orders and products."""

    @abstractmethod
    def get_order(self, order_id: str) -> Optional[Record]:
        """Return the order, or None if it does not exist."""
        pass

    @abstractmethod
    def update_order(self, order_id: str, patch: Record) -> Optional[Record]:
        """
        Apply patch to one order atomically.

        Returns:
            The updated order, or None if it does not exist
        """
        pass

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[Record]:
        """Return the product, or None if it does not exist."""
        pass

    @abstractmethod
    def update_product(self, product_id: str, patch: Record) -> Optional[Record]:
        """
        Apply patch to one product atomically.

        Returns:
            The updated product, or None if it does not exist
        """
        pass

    def list_orders(self, status: Optional[str] = None) -> List[Record]:
        """List orders, optionally filtered by status."""
        raise NotImplementedError(f"{self.__class__.__name__} does not support listing orders")


class InventoryStore(ABC):
    """
    Optional capability: atomic decrement-with-floor of stock.

    Stores that implement it let completion skip the read-then-write
    product update, which can under-decrement under concurrent orders.
    """

    @abstractmethod
    def record_sale(
        self,
        product_id: str,
        option_id: Optional[str],
        quantity: int,
    ) -> bool:
        """
        Decrement stock (option or product level, floored at zero) and
        increment the sold counter in one atomic operation.

        Returns:
            True if the product exists
        """
        pass
