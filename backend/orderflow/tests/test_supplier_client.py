"""
Unit tests for SupplierClient, MockSupplierGateway and the gateway factory.

Tests cover:
- Request shape for getProducts
- Error classification (auth, rate limit, server, timeout, connection)
- Malformed bodies
- Mock gateway scripting
"""

import httpx
import pytest

from orderflow.config.fulfillment import FulfillmentSettings
from orderflow.integrations.supplier import (
    Delivered,
    Failed,
    MockSupplierGateway,
    StillProcessing,
    SupplierAuthenticationError,
    SupplierClient,
    SupplierConnectionError,
    SupplierError,
    SupplierRateLimitError,
    SupplierResponseError,
    SupplierTimeoutError,
    get_supplier_gateway,
)


def make_client(handler, **kwargs) -> SupplierClient:
    return SupplierClient(
        user_token="user-token",
        base_url="https://supplier.test/api/",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestClientInitialization:
    """Tests for client construction."""

    def test_requires_user_token(self):
        with pytest.raises(ValueError, match="Supplier user token is required"):
            SupplierClient(user_token="")

    def test_strips_trailing_slash(self):
        client = SupplierClient(user_token="t", base_url="https://supplier.test/api/")

        assert client.base_url == "https://supplier.test/api"


class TestGetProducts:
    """Tests for the getProducts call."""

    @pytest.mark.asyncio
    async def test_sends_order_and_tokens(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"success": "true", "data": [{"product": "user:a"}]})

        async with make_client(handler) as client:
            response = await client.get_products("SUP-1", "kiosk-1")

        assert seen["path"] == "/api/getProducts"
        assert seen["params"] == {
            "orderId": "SUP-1",
            "userToken": "user-token",
            "kioskToken": "kiosk-1",
        }
        assert response.success is True
        assert response.delivered_items == ["user:a"]

    @pytest.mark.asyncio
    async def test_fetch_fulfillment_delivered(self):
        def handler(request):
            return httpx.Response(200, json={"success": "true", "data": [{"product": "a"}]})

        async with make_client(handler) as client:
            result = await client.fetch_fulfillment("SUP-1", "kiosk")

        assert result == Delivered(items=("a",))

    @pytest.mark.asyncio
    async def test_fetch_fulfillment_processing(self):
        def handler(request):
            return httpx.Response(
                200, json={"success": "false", "description": "Order in processing!"}
            )

        async with make_client(handler) as client:
            result = await client.fetch_fulfillment("SUP-1", "kiosk")

        assert result == StillProcessing(description="Order in processing!")

    @pytest.mark.asyncio
    async def test_fetch_fulfillment_failed(self):
        def handler(request):
            return httpx.Response(200, json={"success": "false", "description": "Invalid order"})

        async with make_client(handler) as client:
            result = await client.fetch_fulfillment("SUP-1", "kiosk")

        assert result == Failed(reason="Invalid order")


class TestErrorClassification:
    """Tests for HTTP and transport error mapping."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_auth_errors(self, status_code):
        async with make_client(lambda request: httpx.Response(status_code)) as client:
            with pytest.raises(SupplierAuthenticationError) as exc_info:
                await client.get_products("SUP-1", "kiosk")

        assert exc_info.value.status_code == status_code

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        def handler(request):
            return httpx.Response(429, json={"success": "false", "description": "Too many requests"})

        async with make_client(handler) as client:
            with pytest.raises(SupplierRateLimitError) as exc_info:
                await client.get_products("SUP-1", "kiosk")

        assert exc_info.value.status_code == 429
        assert exc_info.value.description == "Too many requests"
        assert exc_info.value.upstream_reference == "SUP-1"

    @pytest.mark.asyncio
    async def test_error_envelope_description_in_reason(self):
        """The supplier's description on an HTTP error ends up in the reason text."""
        def handler(request):
            return httpx.Response(400, json={"success": "false", "description": "Kiosk token expired"})

        async with make_client(handler) as client:
            with pytest.raises(SupplierError) as exc_info:
                await client.get_products("SUP-9", "kiosk")

        error = exc_info.value
        assert error.status_code == 400
        assert error.description == "Kiosk token expired"
        assert error.upstream_reference == "SUP-9"
        assert error.reason == "Supplier API error: 400 (Kiosk token expired)"

    @pytest.mark.asyncio
    async def test_error_without_envelope(self):
        async with make_client(lambda request: httpx.Response(500, text="oops")) as client:
            with pytest.raises(SupplierError) as exc_info:
                await client.get_products("SUP-1", "kiosk")

        assert exc_info.value.description is None
        assert exc_info.value.reason == "Supplier API error: 500"

    @pytest.mark.asyncio
    async def test_server_error(self):
        async with make_client(lambda request: httpx.Response(502, text="bad gateway")) as client:
            with pytest.raises(SupplierError) as exc_info:
                await client.get_products("SUP-1", "kiosk")

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_client(handler) as client:
            with pytest.raises(SupplierTimeoutError):
                await client.get_products("SUP-1", "kiosk")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(SupplierConnectionError):
                await client.get_products("SUP-1", "kiosk")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        async with make_client(lambda request: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(SupplierResponseError, match="Invalid JSON"):
                await client.get_products("SUP-1", "kiosk")

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        async with make_client(lambda request: httpx.Response(200, json=[1, 2])) as client:
            with pytest.raises(SupplierResponseError, match="Unexpected supplier payload"):
                await client.get_products("SUP-1", "kiosk")

    @pytest.mark.asyncio
    async def test_schema_violation(self):
        def handler(request):
            return httpx.Response(200, json={"success": "true", "data": [123]})

        async with make_client(handler) as client:
            with pytest.raises(SupplierResponseError, match="Malformed getProducts response"):
                await client.get_products("SUP-1", "kiosk")


class TestMockSupplierGateway:
    """Tests for the scripted mock gateway."""

    @pytest.mark.asyncio
    async def test_default_delivers_test_account(self):
        gateway = MockSupplierGateway()

        result = await gateway.fetch_fulfillment("SUP-1", "kiosk")

        assert result == Delivered(items=("username:test_user", "password:secret123"))
        assert gateway.calls == [("SUP-1", "kiosk")]

    @pytest.mark.asyncio
    async def test_plays_script_then_default(self):
        gateway = MockSupplierGateway(
            results=[StillProcessing(description="processing")],
            default=Failed(reason="gone"),
        )

        assert await gateway.fetch_fulfillment("SUP-1", "k") == StillProcessing(description="processing")
        assert await gateway.fetch_fulfillment("SUP-1", "k") == Failed(reason="gone")

    @pytest.mark.asyncio
    async def test_raises_scripted_exceptions(self):
        gateway = MockSupplierGateway()
        gateway.push(SupplierTimeoutError())

        with pytest.raises(SupplierTimeoutError):
            await gateway.fetch_fulfillment("SUP-1", "k")


class TestGetSupplierGateway:
    """Tests for the gateway factory."""

    def test_mock_mode(self):
        gateway = get_supplier_gateway(FulfillmentSettings(supplier_mock_mode=True))

        assert isinstance(gateway, MockSupplierGateway)
        assert gateway.delay_seconds == 1.0

    def test_real_client(self):
        gateway = get_supplier_gateway(FulfillmentSettings(
            supplier_user_token="user-token",
            supplier_base_url="https://supplier.test/api",
        ))

        assert isinstance(gateway, SupplierClient)
        assert gateway.base_url == "https://supplier.test/api"

    def test_missing_user_token(self):
        with pytest.raises(ValueError, match="Supplier user token is required"):
            get_supplier_gateway(FulfillmentSettings())
