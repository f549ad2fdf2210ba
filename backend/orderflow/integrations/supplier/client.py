"""
Supplier API client for order fulfillment.

This client handles:
- Fetching delivered products for a supplier-side order
- Classifying the answer into Delivered / StillProcessing / Failed
- Mapping HTTP and transport failures onto SupplierError subclasses

Providers:
- SupplierClient (production, httpx)
- MockSupplierGateway (mock mode and tests)

SECURITY:
- User and kiosk tokens travel as query parameters and must never be logged
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Iterable, List, Optional, Tuple, Union

import httpx
from pydantic import ValidationError

from orderflow.config.fulfillment import FulfillmentSettings, get_fulfillment_settings
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
    FulfillmentResult,
    SupplierProductsResponse,
)

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_BASE_URL = "https://taphoammo.net/api"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0
MOCK_DELAY_SECONDS = 1.0
MOCK_DELIVERED_ITEMS = ("username:test_user", "password:secret123")


class SupplierGateway(ABC):
    """Abstract base class for the supplier delivery API."""

    @abstractmethod
    async def fetch_fulfillment(
        self,
        upstream_reference: str,
        credential_token: str,
    ) -> FulfillmentResult:
        """
        Fetch the delivery state of a supplier-side order.

        Args:
            upstream_reference: Supplier order id
            credential_token: Token scoping the call (kiosk token)

        Returns:
            Delivered, StillProcessing or Failed

        Raises:
            SupplierError: On transport errors or malformed responses
        """
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None

    async def __aenter__(self) -> "SupplierGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class SupplierClient(SupplierGateway):
    """
    Async client for the supplier API.

    SECURITY: tokens must be stored securely and never logged.
    """

    def __init__(
        self,
        user_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize supplier client.

        Args:
            user_token: Account-level supplier token
            base_url: API base URL (default: https://taphoammo.net/api)
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (tests)
        """
        if not user_token:
            raise ValueError(
                "Supplier user token is required. Set SUPPLIER_USER_TOKEN environment "
                "variable or pass user_token parameter."
            )

        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._user_token = user_token

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=min(connect_timeout, timeout)),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def _get(self, endpoint: str, params: dict) -> dict:
        """
        Make a GET request to the supplier API.

        Args:
            endpoint: API endpoint path
            params: Query parameters

        Returns:
            Response body as dictionary

        Raises:
            SupplierError: On API errors
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        reference = params.get("orderId")

        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as e:
            logger.warning(
                "Supplier API timeout",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise SupplierTimeoutError(f"Request timeout: {e}", upstream_reference=reference)
        except httpx.RequestError as e:
            logger.warning(
                "Supplier API connection error",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise SupplierConnectionError(f"Connection error: {e}", upstream_reference=reference)

        if response.status_code in (401, 403):
            logger.error(
                "Supplier API authentication failed",
                extra={"status_code": response.status_code, "endpoint": endpoint},
            )
            raise SupplierAuthenticationError(
                status_code=response.status_code,
                description=_error_description(response),
                upstream_reference=reference,
            )

        if response.status_code == 429:
            logger.warning(
                "Supplier API rate limited",
                extra={"endpoint": endpoint, "upstream_reference": reference},
            )
            raise SupplierRateLimitError(
                description=_error_description(response),
                upstream_reference=reference,
            )

        if response.status_code >= 400:
            logger.error(
                "Supplier API error",
                extra={
                    "status_code": response.status_code,
                    "endpoint": endpoint,
                    "response_text": response.text[:500],
                },
            )
            raise SupplierError(
                f"Supplier API error: {response.status_code}",
                status_code=response.status_code,
                description=_error_description(response),
                upstream_reference=reference,
            )

        try:
            body = response.json()
        except ValueError:
            raise SupplierResponseError(
                f"Invalid JSON from supplier: {response.text[:200]}",
                status_code=response.status_code,
                upstream_reference=reference,
            )

        if not isinstance(body, dict):
            raise SupplierResponseError(
                f"Unexpected supplier payload type: {type(body).__name__}",
                status_code=response.status_code,
                upstream_reference=reference,
            )

        return body

    async def get_products(
        self,
        upstream_reference: str,
        credential_token: str,
    ) -> SupplierProductsResponse:
        """
        Retrieve delivered products for a supplier order.

        Args:
            upstream_reference: Supplier order id
            credential_token: Kiosk token scoping the call

        Returns:
            Validated SupplierProductsResponse

        Raises:
            SupplierError: On API errors
        """
        start_time = time.time()

        body = await self._get(
            "/getProducts",
            params={
                "orderId": upstream_reference,
                "userToken": self._user_token,
                "kioskToken": credential_token,
            },
        )

        try:
            response = SupplierProductsResponse.model_validate(body)
        except ValidationError as e:
            raise SupplierResponseError(
                f"Malformed getProducts response: {e.error_count()} validation error(s)",
                upstream_reference=upstream_reference,
                body=body,
            )

        logger.debug(
            "Supplier getProducts answered",
            extra={
                "upstream_reference": upstream_reference,
                "success": response.success,
                "item_count": len(response.data),
                "latency_ms": int((time.time() - start_time) * 1000),
            },
        )
        return response

    async def fetch_fulfillment(
        self,
        upstream_reference: str,
        credential_token: str,
    ) -> FulfillmentResult:
        response = await self.get_products(upstream_reference, credential_token)
        return response.to_result()


def _error_description(response: httpx.Response) -> Optional[str]:
    """The supplier's `description` from an error envelope, if it sent one."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    description = body.get("description")
    if description is None or description == "":
        return None
    return str(description)


class MockSupplierGateway(SupplierGateway):
    """
    Mock supplier for mock mode and testing.

    Plays back scripted results (or exceptions) in order, then falls back to
    the default result. Every call is recorded in `calls`.
    """

    def __init__(
        self,
        results: Optional[Iterable[Union[FulfillmentResult, BaseException]]] = None,
        default: Optional[Union[FulfillmentResult, BaseException]] = None,
        delay_seconds: float = 0.0,
    ):
        self._script = deque(results or [])
        self.default = default if default is not None else Delivered(items=MOCK_DELIVERED_ITEMS)
        self.delay_seconds = delay_seconds
        self.calls: List[Tuple[str, str]] = []

    def push(self, result: Union[FulfillmentResult, BaseException]) -> None:
        """Append a scripted result."""
        self._script.append(result)

    async def fetch_fulfillment(
        self,
        upstream_reference: str,
        credential_token: str,
    ) -> FulfillmentResult:
        self.calls.append((upstream_reference, credential_token))

        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        result = self._script.popleft() if self._script else self.default
        if isinstance(result, BaseException):
            raise result
        return result


def get_supplier_gateway(
    settings: Optional[FulfillmentSettings] = None,
) -> SupplierGateway:
    """
    Factory function to create a SupplierGateway.

    Args:
        settings: Override settings (default: get_fulfillment_settings())

    Returns:
        MockSupplierGateway in mock mode, SupplierClient otherwise
    """
    settings = settings or get_fulfillment_settings()

    if settings.supplier_mock_mode:
        return MockSupplierGateway(delay_seconds=MOCK_DELAY_SECONDS)

    return SupplierClient(
        user_token=settings.supplier_user_token,
        base_url=settings.supplier_base_url,
        timeout=settings.supplier_timeout_seconds,
    )
