"""Database models."""

from orderflow.models.order import Order, OrderStatus
from orderflow.models.product import Product, ProductOption

__all__ = [
    "Order",
    "OrderStatus",
    "Product",
    "ProductOption",
]
