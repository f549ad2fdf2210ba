"""
Order Store implementations.

The fulfillment processor depends only on OrderStore; InventoryStore is an
optional capability for atomic stock updates.
"""

from orderflow.store.base import InventoryStore, OrderStore, Record
from orderflow.store.memory import InMemoryOrderStore
from orderflow.store.sql import SqlOrderStore, SqlOrderStoreError

__all__ = [
    "OrderStore",
    "InventoryStore",
    "Record",
    "InMemoryOrderStore",
    "SqlOrderStore",
    "SqlOrderStoreError",
]
