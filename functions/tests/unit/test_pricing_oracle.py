"""Unit tests for pricing oracle clients."""

import json

import httpx
import pytest
from unittest.mock import patch

from config.errors import ErrorCode, PricingOracleError
from services.pricing_oracle import HttpPricingOracle, InMemoryPricingOracle

BASE_URL = "http://oracle.test"


def make_oracle(handler) -> HttpPricingOracle:
    """HttpPricingOracle wired to an httpx MockTransport."""
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HttpPricingOracle(base_url=BASE_URL, api_key="test-key", timeout_seconds=1.0, client=client)


def status_handler(status: int, body=None):
    def handler(request):
        return httpx.Response(status, json=body if body is not None else {"detail": "error"})
    return handler


class TestHttpPricingOracle:
    """Tests for HttpPricingOracle."""

    @pytest.mark.asyncio
    async def test_round_trip(self):
        requests = []

        def handler(request):
            requests.append((request.method, request.url.path, request.content))
            if request.url.path.endswith("/totals"):
                return httpx.Response(200, json={"totalCost": 56.25, "totalLaborHours": 2.3})
            if request.method == "GET":
                return httpx.Response(200, json={"cost": 56.25, "laborHours": 2.25})
            return httpx.Response(204)

        oracle = make_oracle(handler)

        await oracle.write_quantity("tenant-a", "R23", 45)
        line = await oracle.read_result("tenant-a", "R23")
        totals = await oracle.read_totals("tenant-a")
        await oracle.clear("tenant-a")
        await oracle.aclose()

        assert line.cost == 56.25
        assert line.labor_hours == 2.25
        assert totals.total_cost == 56.25
        assert [(method, path) for method, path, _ in requests] == [
            ("PUT", "/tenants/tenant-a/rows/R23"),
            ("GET", "/tenants/tenant-a/rows/R23"),
            ("GET", "/tenants/tenant-a/totals"),
            ("DELETE", "/tenants/tenant-a/rows"),
        ]
        assert json.loads(requests[0][2]) == {"quantity": 45}

    @pytest.mark.asyncio
    async def test_not_found(self):
        oracle = make_oracle(status_handler(404))

        with pytest.raises(PricingOracleError) as exc_info:
            await oracle.read_result("tenant-a", "R23")

        error = exc_info.value
        assert error.code == ErrorCode.PRICING_ORACLE_FAILURE
        assert "no row" in error.message
        assert not error.retryable
        assert error.tenant_id == "tenant-a"
        assert error.details["status"] == 404

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self):
        oracle = make_oracle(status_handler(500))

        with pytest.raises(PricingOracleError) as exc_info:
            await oracle.write_quantity("tenant-a", "R23", 45)

        assert exc_info.value.retryable
        assert "HTTP 500" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_credentials_rejected(self):
        oracle = make_oracle(status_handler(401))

        with pytest.raises(PricingOracleError, match="credentials"):
            await oracle.read_totals("tenant-a")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        oracle = make_oracle(lambda request: httpx.Response(200, content=b"not json"))

        with pytest.raises(PricingOracleError, match="invalid JSON"):
            await oracle.read_result("tenant-a", "R23")

    @pytest.mark.asyncio
    async def test_unexpected_payload(self):
        oracle = make_oracle(status_handler(200, {"price": 12}))

        with pytest.raises(PricingOracleError, match="Unexpected pricing oracle payload"):
            await oracle.read_result("tenant-a", "R23")

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        oracle = make_oracle(handler)

        with pytest.raises(PricingOracleError, match="unreachable"):
            await oracle.clear("tenant-a")
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        oracle = make_oracle(handler)

        with pytest.raises(PricingOracleError) as exc_info:
            await oracle.read_totals("tenant-a")
        assert exc_info.value.code == ErrorCode.PRICING_ORACLE_TIMEOUT

    def test_requires_url(self):
        with patch('services.pricing_oracle.settings') as mock_settings:
            mock_settings.pricing_oracle_url = None
            mock_settings.pricing_oracle_timeout_seconds = 5.0

            with pytest.raises(PricingOracleError, match="not configured"):
                HttpPricingOracle(api_key="test-key")

    def test_new_client_sends_bearer_token(self):
        oracle = HttpPricingOracle(base_url=BASE_URL + "/", api_key="test-key", timeout_seconds=1.0)

        client = oracle._new_client()

        assert oracle.base_url == BASE_URL
        assert client.headers["Authorization"] == "Bearer test-key"


class TestInMemoryPricingOracle:
    """Tests for InMemoryPricingOracle."""

    @pytest.mark.asyncio
    async def test_prices_from_cost_table(self, in_memory_oracle):
        await in_memory_oracle.write_quantity("tenant-a", "R21", 3)

        line = await in_memory_oracle.read_result("tenant-a", "R21")
        totals = await in_memory_oracle.read_totals("tenant-a")

        assert line.cost == 25.5
        assert line.labor_hours == 2.2
        assert totals.total_cost == 25.5

    @pytest.mark.asyncio
    async def test_tenants_are_isolated(self, in_memory_oracle):
        await in_memory_oracle.write_quantity("tenant-a", "R23", 45)
        await in_memory_oracle.write_quantity("tenant-b", "R23", 100)

        line_a = await in_memory_oracle.read_result("tenant-a", "R23")
        line_b = await in_memory_oracle.read_result("tenant-b", "R23")
        await in_memory_oracle.clear("tenant-a")

        assert line_a.cost == 56.25
        assert line_b.cost == 125.0
        assert in_memory_oracle.sheet("tenant-a") == {}
        assert in_memory_oracle.sheet("tenant-b") == {"R23": 100}

    @pytest.mark.asyncio
    async def test_unread_row_is_zero(self, in_memory_oracle):
        line = await in_memory_oracle.read_result("tenant-a", "R2")
        assert line.cost == 0.0

    @pytest.mark.asyncio
    async def test_unknown_lookup_key(self, in_memory_oracle):
        with pytest.raises(PricingOracleError, match="Unknown lookup key"):
            await in_memory_oracle.write_quantity("tenant-a", "R99", 1)
