"""
Supplier API response models.

The supplier's getProducts endpoint answers with loosely typed JSON:

    {"success": "true", "data": [{"product": "user:a|pass:b"}]}
    {"success": "false", "description": "Order in processing!"}

SupplierProductsResponse validates that payload once at the client
boundary and folds it into a closed FulfillmentResult:
Delivered | StillProcessing | Failed.
"""

import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# The supplier's only "not ready yet" signal is free text
PROCESSING_PATTERN = re.compile(r"processing", re.IGNORECASE)


@dataclass(frozen=True)
class Delivered:
    """Supplier delivered one or more items."""
    items: Tuple[str, ...]


@dataclass(frozen=True)
class StillProcessing:
    """Supplier accepted the order but has not delivered yet."""
    description: str


@dataclass(frozen=True)
class Failed:
    """Any other non-success answer."""
    reason: str


FulfillmentResult = Union[Delivered, StillProcessing, Failed]


class SupplierProduct(BaseModel):
    """One delivered item."""

    model_config = ConfigDict(extra="ignore")

    product: str = Field(
        default="",
        validation_alias=AliasChoices("product", "deliveredText", "delivered_text"),
    )

    @field_validator("product", mode="before")
    @classmethod
    def _coerce_product(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)


class SupplierProductsResponse(BaseModel):
    """Validated getProducts response."""

    model_config = ConfigDict(extra="ignore")

    success: bool = False
    data: List[SupplierProduct] = Field(default_factory=list)
    description: Optional[str] = None

    @field_validator("success", mode="before")
    @classmethod
    def _coerce_success(cls, value: Any) -> bool:
        # The supplier sends "true"/"false" strings
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return bool(value)

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_data(cls, value: Any) -> list:
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        if isinstance(value, str):
            return [{"product": value}]
        if isinstance(value, list):
            return [{"product": item} if isinstance(item, str) else item for item in value]
        return value

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def delivered_items(self) -> List[str]:
        return [item.product for item in self.data]

    def to_result(self) -> FulfillmentResult:
        """Classify this response."""
        if self.success and self.data:
            return Delivered(items=tuple(self.delivered_items))

        if not self.success and self.description and PROCESSING_PATTERN.search(self.description):
            return StillProcessing(description=self.description)

        if self.description:
            return Failed(reason=self.description)
        if self.success:
            return Failed(reason="Supplier reported success without delivered items")
        return Failed(reason="Supplier reported failure without description")
