"""
In-memory Order Store.

Used in supplier mock mode, local development and tests. Records are
deep-copied on the way in and out so callers never share state with the
store.
"""

import copy
from threading import Lock
from typing import Dict, List, Optional

from orderflow.store.base import OrderStore, Record


class InMemoryOrderStore(OrderStore):
    """Dict-backed OrderStore with per-call locking."""

    def __init__(self):
        self._orders: Dict[str, Record] = {}
        self._products: Dict[str, Record] = {}
        self._lock = Lock()
        self.order_updates: List[Record] = []
        self.product_updates: List[Record] = []

    def create_order(self, order: Record) -> Record:
        if not order.get("id"):
            raise ValueError("order id is required")
        with self._lock:
            if order["id"] in self._orders:
                raise ValueError(f"Order {order['id']} already exists")
            self._orders[order["id"]] = copy.deepcopy(order)
            return copy.deepcopy(order)

    def create_product(self, product: Record) -> Record:
        if not product.get("id"):
            raise ValueError("product id is required")
        stored = copy.deepcopy(product)
        stored.setdefault("sold", 0)
        stored.setdefault("options", [])
        with self._lock:
            self._products[product["id"]] = stored
            return copy.deepcopy(stored)

    def get_order(self, order_id: str) -> Optional[Record]:
        with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order is not None else None

    def update_order(self, order_id: str, patch: Record) -> Optional[Record]:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            order.update(copy.deepcopy(patch))
            self.order_updates.append({"id": order_id, **copy.deepcopy(patch)})
            return copy.deepcopy(order)

    def get_product(self, product_id: str) -> Optional[Record]:
        with self._lock:
            product = self._products.get(product_id)
            return copy.deepcopy(product) if product is not None else None

    def update_product(self, product_id: str, patch: Record) -> Optional[Record]:
        with self._lock:
            product = self._products.get(product_id)
            if product is None:
                return None
            product.update(copy.deepcopy(patch))
            self.product_updates.append({"id": product_id, **copy.deepcopy(patch)})
            return copy.deepcopy(product)

    def list_orders(self, status: Optional[str] = None) -> List[Record]:
        with self._lock:
            return [
                copy.deepcopy(order)
                for order in self._orders.values()
                if status is None or order.get("status") == status
            ]
