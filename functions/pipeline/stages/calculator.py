"""Price Calculator stage.

Prices mapped services through the external pricing oracle or, when no
oracle is configured, through the local cost table. The oracle session is
bounded by a timeout; on failure the calculator either falls back to the
local table or raises PricingOracleError for the orchestrator to report.
"""

import asyncio
import time
from typing import Dict, Any, List, Optional

import structlog

from config.errors import CalculationError, ErrorCode, PricingOracleError
from models.services import MappedService, PricedService
from models.pipeline_result import PricingResult, QuoteTotals, StepResult
from pipeline.composition import consolidate_services, ensure_companions
from pipeline.interfaces import PriceCalculator, build_step_result
from services.cost_table import CostRate, get_cost_rate
from services.pricing_oracle import PricingOracle
from services.service_catalog import ServiceCatalog, get_default_catalog, unit_display_name

logger = structlog.get_logger(__name__)

SOURCE_ORACLE = "oracle"
SOURCE_LOCAL = "local_table"
SOURCE_DEFAULT = "default"


class Calculator(PriceCalculator):
    """Calculator backed by a pricing oracle with local-table fallback."""

    def __init__(
        self,
        catalog: Optional[ServiceCatalog] = None,
        oracle: Optional[PricingOracle] = None,
        cost_table: Optional[Dict[str, CostRate]] = None,
        timeout_seconds: float = 5.0,
        fallback_to_local: bool = True,
        default_tenant_id: str = "default",
        composed_confidence: float = 0.9
    ):
        """Initialize Calculator.

        Args:
            catalog: Service catalog (default process catalog).
            oracle: External pricing oracle; None prices from the local table.
            cost_table: Local cost table override.
            timeout_seconds: Upper bound for one oracle session.
            fallback_to_local: Price locally when the oracle fails instead of raising.
            default_tenant_id: Tenant used when the caller does not pass one.
            composed_confidence: Confidence for auto-added companion services.
        """
        self.catalog = catalog or get_default_catalog()
        self.oracle = oracle
        self.cost_table = cost_table
        self.timeout_seconds = timeout_seconds
        self.fallback_to_local = fallback_to_local
        self.default_tenant_id = default_tenant_id
        self.composed_confidence = composed_confidence

    async def calculate(
        self,
        services: List[MappedService],
        tenant_id: Optional[str] = None
    ) -> StepResult:
        started_at = time.perf_counter()
        warnings: List[str] = []
        info: List[str] = []

        self.validate_services(services)

        services, merge_warnings = consolidate_services(services)
        services, companion_warnings = ensure_companions(services, self.catalog, self.composed_confidence)
        warnings.extend(merge_warnings + companion_warnings)

        tenant = tenant_id or self.default_tenant_id
        pricing_source = SOURCE_LOCAL

        if self.oracle is None:
            priced = self.price_locally(services)
            info.append("Priced from local cost table")
        else:
            try:
                priced = await asyncio.wait_for(
                    self._price_with_oracle(services, tenant),
                    timeout=self.timeout_seconds,
                )
                pricing_source = SOURCE_ORACLE
                info.append(f"Priced by oracle for tenant {tenant}")
            except asyncio.TimeoutError:
                error = PricingOracleError(
                    code=ErrorCode.PRICING_ORACLE_TIMEOUT,
                    message=f"Pricing oracle did not respond within {self.timeout_seconds:g}s",
                    tenant_id=tenant,
                )
                priced = self._fallback(error, services, warnings)
            except PricingOracleError as e:
                priced = self._fallback(e, services, warnings)

        totals = self.calculate_totals(priced)
        result = PricingResult(
            services=priced,
            totals=totals,
            calculation_time_ms=round((time.perf_counter() - started_at) * 1000, 3),
            special_calculations=self.special_calculations(priced),
            pricing_source=pricing_source,
        )

        logger.info(
            "services_priced",
            tenant_id=tenant,
            service_count=totals.service_count,
            total_cost=totals.total_cost,
            total_labor_hours=totals.total_labor_hours,
            pricing_source=pricing_source,
        )

        return build_step_result(
            self.step_name,
            result,
            started_at,
            intermediate_output={
                "lines": [
                    {
                        "canonicalName": s.canonical_name,
                        "quantity": s.quantity,
                        "totalCost": s.total_cost,
                        "laborHours": s.labor_hours,
                        "source": s.pricing_source,
                    }
                    for s in priced
                ],
                "totals": totals.model_dump(by_alias=True),
                "pricingSource": pricing_source,
            },
            info=info,
            warnings=warnings,
        )

    def validate_services(self, services: List[MappedService]) -> None:
        """Raise CalculationError unless every line has a valid key and positive quantity."""
        if not services:
            raise CalculationError("No services provided for calculation")

        invalid = []
        for service in services:
            if not self.catalog.is_valid_lookup_key(service.lookup_key):
                invalid.append({"name": service.name, "reason": f"invalid lookup key {service.lookup_key!r}"})
            elif service.quantity <= 0:
                invalid.append({"name": service.name, "reason": f"quantity must be positive, got {service.quantity:g}"})

        if invalid:
            raise CalculationError(
                f"{len(invalid)} service(s) cannot be priced",
                details={"invalid_services": invalid},
            )

    def price_locally(self, services: List[MappedService]) -> List[PricedService]:
        """Price every line from the local cost table."""
        priced = []
        for service in services:
            rate, is_default = get_cost_rate(service.canonical_name, self.cost_table)
            if is_default:
                logger.warning("cost_rate_defaulted", canonical_name=service.canonical_name)
            priced.append(self._priced(
                service,
                cost=rate.unit_cost * service.quantity,
                labor_hours=rate.labor_hours_per_unit * service.quantity,
                source=SOURCE_DEFAULT if is_default else SOURCE_LOCAL,
                unit_cost=rate.unit_cost,
            ))
        return priced

    async def _price_with_oracle(self, services: List[MappedService], tenant_id: str) -> List[PricedService]:
        await self.oracle.clear(tenant_id)
        try:
            for service in services:
                await self.oracle.write_quantity(tenant_id, service.lookup_key, service.quantity)

            priced = []
            for service in services:
                line = await self.oracle.read_result(tenant_id, service.lookup_key)
                priced.append(self._priced(service, line.cost, line.labor_hours, SOURCE_ORACLE))

            oracle_totals = await self.oracle.read_totals(tenant_id)
            summed = round(sum(s.total_cost for s in priced), 2)
            if abs(oracle_totals.total_cost - summed) > 0.01:
                logger.warning(
                    "oracle_totals_mismatch",
                    tenant_id=tenant_id,
                    oracle_total=oracle_totals.total_cost,
                    summed_total=summed,
                )
            return priced
        finally:
            try:
                await self.oracle.clear(tenant_id)
            except PricingOracleError as e:
                logger.warning("oracle_clear_failed", tenant_id=tenant_id, error=e.message)

    def _fallback(
        self,
        error: PricingOracleError,
        services: List[MappedService],
        warnings: List[str]
    ) -> List[PricedService]:
        if not self.fallback_to_local:
            raise error
        logger.warning("pricing_oracle_fallback", code=error.code, error=error.message)
        warnings.append(f"{error.message}; priced from local cost table")
        return self.price_locally(services)

    @staticmethod
    def _priced(
        service: MappedService,
        cost: float,
        labor_hours: float,
        source: str,
        unit_cost: Optional[float] = None
    ) -> PricedService:
        if unit_cost is None:
            unit_cost = cost / service.quantity
        return PricedService(
            **service.model_dump(include=set(MappedService.model_fields)),
            unit_cost=round(unit_cost, 4),
            total_cost=round(cost, 2),
            labor_hours=round(labor_hours, 1),
            pricing_source=source,
        )

    @staticmethod
    def calculate_totals(services: List[PricedService]) -> QuoteTotals:
        return QuoteTotals(
            total_cost=round(sum(s.total_cost for s in services), 2),
            total_labor_hours=round(sum(s.labor_hours for s in services), 1),
            service_count=len(services),
        )

    @staticmethod
    def special_calculations(services: List[PricedService]) -> Dict[str, Any]:
        """Irrigation breakdown: setup cost vs zone cost."""
        irrigation = [s for s in services if s.category == "irrigation"]
        if not irrigation:
            return {}

        boring_required = None
        for service in irrigation:
            if service.attributes.get("boring_required") is not None:
                boring_required = service.attributes["boring_required"]
                break

        zone_lines = [s for s in irrigation if s.unit == "zone"]
        return {
            "irrigation": {
                "setupCost": round(sum(s.total_cost for s in irrigation if s.unit == "setup"), 2),
                "zoneCost": round(sum(s.total_cost for s in zone_lines), 2),
                "zoneCount": sum(s.quantity for s in zone_lines),
                "boringRequired": boring_required,
            }
        }


def format_pricing_result(result: PricingResult) -> str:
    """Plain-text rendering of a pricing result."""
    if not result.services:
        return "No services priced."

    if len(result.services) == 1:
        service = result.services[0]
        return (
            f"{service.canonical_name}: {service.quantity:g} {unit_display_name(service.unit)}\n"
            f"Cost: ${service.total_cost:,.2f}\n"
            f"Labor: {service.labor_hours:g} hours"
        )

    lines = ["PROJECT BREAKDOWN:"]
    for index, service in enumerate(result.services, start=1):
        lines.append(
            f"{index}. {service.canonical_name}: {service.quantity:g} {unit_display_name(service.unit)} "
            f"- ${service.total_cost:,.2f} ({service.labor_hours:g} hrs)"
        )
    lines.append("")
    lines.append(f"TOTAL PROJECT COST: ${result.totals.total_cost:,.2f}")
    lines.append(f"TOTAL LABOR HOURS: {result.totals.total_labor_hours:g}")
    return "\n".join(lines)
