"""
SQLAlchemy-backed Order Store.

Each call runs in its own session and commits once, which gives the
per-record atomicity the fulfillment processor relies on. record_sale()
adds an atomic decrement-with-floor so completion does not race on stock.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import sessionmaker

from orderflow.database.session import session_scope
from orderflow.models.order import Order, OrderStatus
from orderflow.models.product import Product, ProductOption
from orderflow.store.base import InventoryStore, OrderStore, Record

logger = logging.getLogger(__name__)

ORDER_UPDATABLE_FIELDS = frozenset({
    "status",
    "delivery_info",
    "completed_at",
    "updated_at",
    "upstream_order_id",
    "quantity",
    "selected_option_id",
})

PRODUCT_UPDATABLE_FIELDS = frozenset({
    "title",
    "stock",
    "sold",
    "updated_at",
})

OPTION_UPDATABLE_FIELDS = frozenset({
    "name",
    "stock",
    "supplier_token",
})


class SqlOrderStoreError(Exception):
    """Raised when a patch cannot be applied."""
    pass


def _check_fields(patch: Dict[str, Any], allowed: frozenset, kind: str) -> None:
    unknown = set(patch) - allowed
    if unknown:
        raise SqlOrderStoreError(
            f"Cannot update {kind} fields: {', '.join(sorted(unknown))}"
        )


def _floored_decrement(column, quantity: int):
    return case((column > quantity, column - quantity), else_=0)


class SqlOrderStore(OrderStore, InventoryStore):
    """
    OrderStore over the orders, products and product_options tables.

    Args:
        session_factory: sessionmaker bound to the application database
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_order(self, order_id: str) -> Optional[Record]:
        with session_scope(self._session_factory) as session:
            order = session.get(Order, order_id)
            return order.to_dict() if order is not None else None

    def update_order(self, order_id: str, patch: Record) -> Optional[Record]:
        _check_fields(patch, ORDER_UPDATABLE_FIELDS, "order")

        with session_scope(self._session_factory) as session:
            order = session.get(Order, order_id)
            if order is None:
                return None

            for key, value in patch.items():
                if isinstance(value, OrderStatus):
                    value = value.value
                setattr(order, key, value)

            session.flush()
            return order.to_dict()

    def get_product(self, product_id: str) -> Optional[Record]:
        with session_scope(self._session_factory) as session:
            product = session.get(Product, product_id)
            return product.to_dict() if product is not None else None

    def update_product(self, product_id: str, patch: Record) -> Optional[Record]:
        option_patches = patch.get("options")
        fields = {k: v for k, v in patch.items() if k != "options"}
        _check_fields(fields, PRODUCT_UPDATABLE_FIELDS, "product")

        with session_scope(self._session_factory) as session:
            product = session.get(Product, product_id)
            if product is None:
                return None

            for key, value in fields.items():
                setattr(product, key, value)

            if option_patches is not None:
                options_by_id = {option.id: option for option in product.options}
                for option_patch in option_patches:
                    option = options_by_id.get(option_patch.get("id"))
                    if option is None:
                        logger.warning(
                            "Ignoring patch for unknown product option",
                            extra={"product_id": product_id, "option_id": option_patch.get("id")},
                        )
                        continue
                    for key, value in option_patch.items():
                        if key in OPTION_UPDATABLE_FIELDS:
                            setattr(option, key, value)

            session.flush()
            return product.to_dict()

    def list_orders(self, status: Optional[str] = None) -> List[Record]:
        with session_scope(self._session_factory) as session:
            query = select(Order).order_by(Order.created_at)
            if status is not None:
                query = query.where(Order.status == status)
            return [order.to_dict() for order in session.scalars(query)]

    def record_sale(
        self,
        product_id: str,
        option_id: Optional[str],
        quantity: int,
    ) -> bool:
        with session_scope(self._session_factory) as session:
            option_count = session.scalar(
                select(func.count(ProductOption.id)).where(ProductOption.product_id == product_id)
            )

            if option_id and option_count:
                session.execute(
                    update(ProductOption)
                    .where(
                        ProductOption.id == option_id,
                        ProductOption.product_id == product_id,
                    )
                    .values(stock=_floored_decrement(ProductOption.stock, quantity))
                    .execution_options(synchronize_session=False)
                )
            else:
                session.execute(
                    update(Product)
                    .where(Product.id == product_id, Product.stock.isnot(None))
                    .values(stock=_floored_decrement(Product.stock, quantity))
                    .execution_options(synchronize_session=False)
                )

            result = session.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(sold=func.coalesce(Product.sold, 0) + quantity)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0
