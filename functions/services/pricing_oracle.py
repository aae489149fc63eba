"""Pricing oracle clients.

The pricing oracle is an external spreadsheet-style service: the calculator
writes a quantity into the row identified by a lookup key, then reads back
the computed cost and labor hours. Every call is keyed by a tenant id so
tenants work against isolated pricing tables.

- PricingOracle: async interface consumed by the calculator
- HttpPricingOracle: httpx client with retry on transport errors
- InMemoryPricingOracle: local-table-backed oracle for tests and offline use
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx
import structlog
from pydantic import BaseModel, Field
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from config.errors import ErrorCode, PricingOracleError
from config.secrets import get_pricing_oracle_api_key
from config.settings import settings
from services.cost_table import CostRate, LOCAL_COST_TABLE, get_cost_rate
from services.service_catalog import ServiceCatalog, get_default_catalog

logger = structlog.get_logger(__name__)


class OracleLineResult(BaseModel):
    """Cost and labor hours computed by the oracle for one row."""

    cost: float = Field(ge=0.0)
    labor_hours: float = Field(ge=0.0, alias="laborHours")

    class Config:
        populate_by_name = True


class OracleTotals(BaseModel):
    """Project totals computed by the oracle."""

    total_cost: float = Field(default=0.0, alias="totalCost")
    total_labor_hours: float = Field(default=0.0, alias="totalLaborHours")

    class Config:
        populate_by_name = True


class PricingOracle(ABC):
    """Async interface to the external pricing table."""

    @abstractmethod
    async def write_quantity(self, tenant_id: str, lookup_key: str, quantity: float) -> None:
        """Write a quantity into the row for lookup_key."""

    @abstractmethod
    async def read_result(self, tenant_id: str, lookup_key: str) -> OracleLineResult:
        """Read cost and labor hours for lookup_key."""

    @abstractmethod
    async def read_totals(self, tenant_id: str) -> OracleTotals:
        """Read project totals."""

    @abstractmethod
    async def clear(self, tenant_id: str) -> None:
        """Reset all quantities for the tenant."""

    async def aclose(self) -> None:
        """Release network resources, if any."""


class HttpPricingOracle(PricingOracle):
    """HTTP client for the pricing oracle service.

    Endpoints (relative to base_url):
        PUT    /tenants/{tenant}/rows/{lookup_key}     {"quantity": q}
        GET    /tenants/{tenant}/rows/{lookup_key}     -> {"cost", "laborHours"}
        GET    /tenants/{tenant}/totals                -> {"totalCost", "totalLaborHours"}
        DELETE /tenants/{tenant}/rows
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        """Initialize HttpPricingOracle.

        Args:
            base_url: Oracle base URL (default from settings).
            api_key: Bearer token (default from secrets).
            timeout_seconds: Per-request timeout (default from settings).
            client: Optional pre-built httpx client (tests inject a MockTransport).
        """
        self.base_url = (base_url or settings.pricing_oracle_url or "").rstrip("/")
        self.api_key = api_key or get_pricing_oracle_api_key()
        self.timeout_seconds = timeout_seconds or settings.pricing_oracle_timeout_seconds

        if not self.base_url and client is None:
            raise PricingOracleError(
                code=ErrorCode.PRICING_ORACLE_FAILURE,
                message="Pricing oracle URL is not configured",
                retryable=False,
            )
        self._client = client

    def _new_client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            headers=headers,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def write_quantity(self, tenant_id: str, lookup_key: str, quantity: float) -> None:
        await self._request("PUT", f"/tenants/{tenant_id}/rows/{lookup_key}", tenant_id, json={"quantity": quantity})

    async def read_result(self, tenant_id: str, lookup_key: str) -> OracleLineResult:
        data = await self._request("GET", f"/tenants/{tenant_id}/rows/{lookup_key}", tenant_id)
        return self._parse(OracleLineResult, data, tenant_id)

    async def read_totals(self, tenant_id: str) -> OracleTotals:
        data = await self._request("GET", f"/tenants/{tenant_id}/totals", tenant_id)
        return self._parse(OracleTotals, data, tenant_id)

    async def clear(self, tenant_id: str) -> None:
        await self._request("DELETE", f"/tenants/{tenant_id}/rows", tenant_id)

    async def _request(self, method: str, path: str, tenant_id: str, json: Optional[Dict] = None) -> Dict:
        """Send a request, translating httpx failures into PricingOracleError."""
        try:
            response = await self._send(method, path, json)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("pricing_oracle_http_error", path=path, status=status, tenant_id=tenant_id)
            if status in (401, 403):
                message = "Pricing oracle rejected the credentials"
            elif status == 404:
                message = f"Pricing oracle has no row for {path}"
            else:
                message = f"Pricing oracle returned HTTP {status}"
            raise PricingOracleError(
                code=ErrorCode.PRICING_ORACLE_FAILURE,
                message=message,
                tenant_id=tenant_id,
                retryable=status >= 500 or status == 429,
                details={"status": status, "path": path},
            )
        except httpx.TimeoutException as e:
            logger.warning("pricing_oracle_timeout", path=path, tenant_id=tenant_id)
            raise PricingOracleError(
                code=ErrorCode.PRICING_ORACLE_TIMEOUT,
                message="Pricing oracle request timed out",
                tenant_id=tenant_id,
                details={"path": path, "error": str(e)},
            )
        except httpx.HTTPError as e:
            logger.warning("pricing_oracle_unreachable", path=path, tenant_id=tenant_id, error=str(e))
            raise PricingOracleError(
                code=ErrorCode.PRICING_ORACLE_FAILURE,
                message=f"Pricing oracle unreachable: {e}",
                tenant_id=tenant_id,
                details={"path": path},
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise PricingOracleError(
                code=ErrorCode.PRICING_ORACLE_FAILURE,
                message="Pricing oracle returned invalid JSON",
                tenant_id=tenant_id,
                retryable=False,
                details={"path": path},
            )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _send(self, method: str, path: str, json: Optional[Dict] = None) -> httpx.Response:
        # Injected clients are reused; otherwise one client per call
        if self._client is not None:
            response = await self._client.request(method, path, json=json)
        else:
            async with self._new_client() as client:
                response = await client.request(method, path, json=json)
        response.raise_for_status()
        return response

    @staticmethod
    def _parse(model, data: Dict, tenant_id: str):
        try:
            return model.model_validate(data)
        except ValueError as e:
            raise PricingOracleError(
                code=ErrorCode.PRICING_ORACLE_FAILURE,
                message=f"Unexpected pricing oracle payload: {e}",
                tenant_id=tenant_id,
                retryable=False,
            )


class InMemoryPricingOracle(PricingOracle):
    """Pricing oracle backed by the local cost table.

    Keeps one isolated sheet of quantities per tenant. Unknown lookup keys
    are rejected like the real oracle would.
    """

    def __init__(
        self,
        catalog: Optional[ServiceCatalog] = None,
        cost_table: Optional[Dict[str, CostRate]] = None
    ):
        self.catalog = catalog or get_default_catalog()
        self.cost_table = cost_table if cost_table is not None else LOCAL_COST_TABLE
        self._sheets: Dict[str, Dict[str, float]] = {}

    def sheet(self, tenant_id: str) -> Dict[str, float]:
        """Current quantities for a tenant (copy)."""
        return dict(self._sheets.get(tenant_id, {}))

    async def write_quantity(self, tenant_id: str, lookup_key: str, quantity: float) -> None:
        self._require_key(tenant_id, lookup_key)
        self._sheets.setdefault(tenant_id, {})[lookup_key] = quantity

    async def read_result(self, tenant_id: str, lookup_key: str) -> OracleLineResult:
        entry = self._require_key(tenant_id, lookup_key)
        quantity = self._sheets.get(tenant_id, {}).get(lookup_key, 0.0)
        rate, _ = get_cost_rate(entry.canonical_name, self.cost_table)
        return OracleLineResult(
            cost=round(rate.unit_cost * quantity, 2),
            labor_hours=round(rate.labor_hours_per_unit * quantity, 1),
        )

    async def read_totals(self, tenant_id: str) -> OracleTotals:
        total_cost = 0.0
        total_hours = 0.0
        for lookup_key in self._sheets.get(tenant_id, {}):
            line = await self.read_result(tenant_id, lookup_key)
            total_cost += line.cost
            total_hours += line.labor_hours
        return OracleTotals(total_cost=round(total_cost, 2), total_labor_hours=round(total_hours, 1))

    async def clear(self, tenant_id: str) -> None:
        self._sheets.pop(tenant_id, None)

    def _require_key(self, tenant_id: str, lookup_key: str):
        entry = self.catalog.get_by_lookup_key(lookup_key)
        if entry is None:
            raise PricingOracleError(
                code=ErrorCode.PRICING_ORACLE_FAILURE,
                message=f"Unknown lookup key: {lookup_key}",
                tenant_id=tenant_id,
                retryable=False,
            )
        return entry
