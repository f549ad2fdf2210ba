"""
Supplier integration for asynchronous order delivery.

Provides the gateway used to poll the supplier for delivered products.
"""

from orderflow.integrations.supplier.client import (
    SupplierGateway,
    SupplierClient,
    MockSupplierGateway,
    get_supplier_gateway,
)
from orderflow.integrations.supplier.exceptions import (
    SupplierError,
    SupplierAuthenticationError,
    SupplierRateLimitError,
    SupplierConnectionError,
    SupplierTimeoutError,
    SupplierResponseError,
)
from orderflow.integrations.supplier.models import (
    Delivered,
    StillProcessing,
    Failed,
    FulfillmentResult,
    SupplierProduct,
    SupplierProductsResponse,
)

__all__ = [
    # Client
    "SupplierGateway",
    "SupplierClient",
    "MockSupplierGateway",
    "get_supplier_gateway",
    # Exceptions
    "SupplierError",
    "SupplierAuthenticationError",
    "SupplierRateLimitError",
    "SupplierConnectionError",
    "SupplierTimeoutError",
    "SupplierResponseError",
    # Models
    "Delivered",
    "StillProcessing",
    "Failed",
    "FulfillmentResult",
    "SupplierProduct",
    "SupplierProductsResponse",
]
