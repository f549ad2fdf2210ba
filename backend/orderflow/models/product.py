"""
Product and ProductOption models.

A product is either sold as a single item (top-level stock) or through
purchasable options, each with its own stock and supplier kiosk token.
stock = NULL means the product does not track inventory.
"""

from sqlalchemy import Column, String, Integer, ForeignKey, Index
from sqlalchemy.orm import relationship

from orderflow.models.base import Base, TimestampMixin, generate_uuid


class Product(Base, TimestampMixin):
    """Sellable digital-account product."""

    __tablename__ = "products"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )
    title = Column(
        String(255),
        nullable=False,
        default="",
        comment="Display title"
    )
    stock = Column(
        Integer,
        nullable=True,
        comment="Top-level stock (NULL when not tracked)"
    )
    sold = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Cumulative units sold"
    )

    options = relationship(
        "ProductOption",
        back_populates="product",
        order_by="ProductOption.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "stock": self.stock,
            "sold": self.sold or 0,
            "options": [option.to_dict() for option in self.options],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class ProductOption(Base, TimestampMixin):
    """Purchasable variant of a product."""

    __tablename__ = "product_options"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )
    product_id = Column(
        String(36),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        comment="Owning product"
    )
    name = Column(
        String(255),
        nullable=False,
        default="",
        comment="Option label"
    )
    stock = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Option stock"
    )
    supplier_token = Column(
        String(255),
        nullable=True,
        comment="Supplier kiosk token for this option"
    )
    position = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Display order"
    )

    product = relationship("Product", back_populates="options")

    __table_args__ = (
        Index("ix_product_options_product_id", "product_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "stock": self.stock,
            "supplier_token": self.supplier_token,
        }
