"""
Order model.

An order is created pending when checkout succeeds and the supplier
accepts the purchase. The fulfillment processor moves it to completed once
the supplier delivers. Exhausted orders stay pending for manual review.
"""

import enum

from sqlalchemy import Column, String, Integer, Numeric, DateTime, Text, ForeignKey, Index

from orderflow.models.base import Base, TimestampMixin, generate_uuid


class OrderStatus(str, enum.Enum):
    """Order status values."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class Order(Base, TimestampMixin):
    """
    Purchase order for a digital-account product.

    Attributes:
        id: Primary key (UUID)
        user_id: Purchasing user
        product_id: Purchased product
        selected_option_id: Purchased option, when the product has options
        quantity: Units purchased
        status: pending | completed | cancelled | refunded
        upstream_order_id: Supplier-side order id (set after purchase)
        delivery_info: JSON array of parsed credentials
        completed_at: When delivery completed
    """

    __tablename__ = "orders"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )
    user_id = Column(
        String(255),
        nullable=True,
        index=True,
        comment="Purchasing user"
    )
    product_id = Column(
        String(36),
        ForeignKey("products.id"),
        nullable=False,
        index=True,
        comment="Purchased product"
    )
    selected_option_id = Column(
        String(36),
        nullable=True,
        comment="Purchased product option"
    )
    quantity = Column(
        Integer,
        nullable=False,
        default=1,
        comment="Units purchased"
    )
    total_amount = Column(
        Numeric(14, 2),
        nullable=True,
        comment="Total charged"
    )
    status = Column(
        String(32),
        nullable=False,
        default=OrderStatus.PENDING.value,
        comment="pending, completed, cancelled, refunded"
    )
    upstream_order_id = Column(
        String(255),
        nullable=True,
        comment="Supplier-side order id"
    )
    delivery_info = Column(
        Text,
        nullable=True,
        comment="JSON array of delivered credentials"
    )
    completed_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the supplier delivery completed"
    )

    __table_args__ = (
        Index("ix_orders_status", "status"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "selected_option_id": self.selected_option_id,
            "quantity": self.quantity,
            "total_amount": self.total_amount,
            "status": self.status,
            "upstream_order_id": self.upstream_order_id,
            "delivery_info": self.delivery_info,
            "completed_at": self.completed_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
