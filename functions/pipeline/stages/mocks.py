"""Deterministic mock stages.

Used by the "mock" preset and by hybrid pipelines to replace individual
stages. None of them touch the network; the calculator prices from flat
per-category rates so tests can assert exact totals.
"""

import time
from typing import Dict, Any, List, Optional, Tuple

import structlog

from config.errors import CalculationError, ErrorCode
from models.services import CategoryHint, MappedService, PricedService, RawService, ValidatedService
from models.pipeline_result import (
    DetectionResult,
    InputAnalysis,
    MappingResult,
    PricingResult,
    StepResult,
    UnmappedService,
    ValidationResult,
)
from pipeline.composition import consolidate_services, ensure_companions
from pipeline.interfaces import (
    CompletenessChecker,
    PriceCalculator,
    ServiceDetector,
    ServiceMapper,
    build_step_result,
)
from pipeline.stages.calculator import Calculator
from services.cost_table import CostRate
from services.service_catalog import ServiceCatalog, get_default_catalog

logger = structlog.get_logger(__name__)

SOURCE_MOCK = "mock"

# (required keywords, canned services)
MOCK_DETECTIONS: List[Tuple[Tuple[str, ...], List[Dict[str, Any]]]] = [
    (
        ("45", "mulch", "edging"),
        [
            {
                "name": "Triple Ground Mulch (SQFT)",
                "quantity": 45,
                "unit": "sqft",
                "confidence": 0.95,
                "original_text": "45 sq ft triple ground mulch",
            },
            {
                "name": "Metal Edging",
                "quantity": 3,
                "unit": "linear_feet",
                "confidence": 0.92,
                "original_text": "3 feet metal edging",
            },
        ],
    ),
    (
        ("100", "mulch"),
        [
            {
                "name": "Triple Ground Mulch (SQFT)",
                "quantity": 100,
                "unit": "sqft",
                "confidence": 0.92,
                "original_text": "100 square feet of mulch",
            },
        ],
    ),
    (
        ("irrigation", "zone"),
        [
            {
                "name": "Irrigation Set Up Cost",
                "quantity": 1,
                "unit": "setup",
                "confidence": 0.90,
                "original_text": "irrigation setup",
                "attributes": {"zone_count": 2, "boring_required": False},
            },
            {
                "name": "Irrigation (per zone)",
                "quantity": 2,
                "unit": "zone",
                "confidence": 0.88,
                "original_text": "2 turf zones",
                "attributes": {"zone_count": 2, "boring_required": False},
            },
        ],
    ),
]

DEFAULT_MOCK_SERVICE = "General Service"

# Flat rates per catalog category
MOCK_CATEGORY_RATES: Dict[str, CostRate] = {
    "materials": CostRate(2.00, 0.05),
    "hardscape": CostRate(25.00, 0.75),
    "irrigation": CostRate(200.00, 2.0),
    "planting": CostRate(15.00, 0.5),
    "edging": CostRate(8.00, 0.6),
    "drainage": CostRate(20.00, 0.8),
    "structures": CostRate(60.00, 1.0),
}
MOCK_DEFAULT_RATE = CostRate(10.00, 0.5)


class MockDetector(ServiceDetector):
    """Returns canned detections for known phrases."""

    def detect(
        self,
        text: str,
        category_hints: Optional[List[CategoryHint]] = None
    ) -> StepResult:
        started_at = time.perf_counter()

        if not text or not text.strip():
            return build_step_result(
                self.step_name,
                DetectionResult(),
                started_at,
                intermediate_output={"mock": True, "serviceCount": 0},
                info=["Input is empty"],
            )

        lowered = text.lower()
        canned = None
        for keywords, services in MOCK_DETECTIONS:
            if all(keyword in lowered for keyword in keywords):
                canned = services
                break

        if canned is not None:
            services = [RawService(**service) for service in canned]
            unmapped: List[str] = []
            info = [f"Mock detection matched {len(services)} canned service(s)"]
        else:
            services = [
                RawService(
                    name=DEFAULT_MOCK_SERVICE,
                    quantity=1,
                    unit="each",
                    confidence=0.6,
                    original_text=text.strip(),
                )
            ]
            unmapped = text.split()[1:]
            info = ["Mock detection fell back to a generic service"]

        confidences = [service.confidence for service in services]
        result = DetectionResult(
            services=services,
            unmapped_text=unmapped,
            input_analysis=InputAnalysis(
                has_multiple_services=len(services) > 1,
                has_quantities=all(service.quantity > 0 for service in services),
                has_units=all(service.unit for service in services),
                overall_confidence=round(sum(confidences) / len(confidences), 3),
            ),
        )

        return build_step_result(
            self.step_name,
            result,
            started_at,
            intermediate_output={
                "mock": True,
                "serviceCount": len(services),
                "services": [s.name for s in services],
            },
            info=info,
        )


class MockChecker(CompletenessChecker):
    """Lenient checker: positive quantity, a unit and confidence >= min_confidence."""

    def __init__(self, min_confidence: float = 0.8):
        self.min_confidence = min_confidence

    def check(self, services: List[RawService]) -> StepResult:
        started_at = time.perf_counter()

        complete: List[ValidatedService] = []
        incomplete: List[ValidatedService] = []
        questions: List[str] = []

        for service in services:
            missing = []
            kinds = []
            if service.quantity <= 0:
                missing.append("quantity")
                kinds.append(ErrorCode.INVALID_QUANTITY)
            if not service.unit:
                missing.append("unit")
                kinds.append(ErrorCode.INCOMPLETE_SERVICE)
            if service.confidence < self.min_confidence:
                missing.append("confidence")
                kinds.append(ErrorCode.INCOMPLETE_SERVICE)

            validated = ValidatedService(
                **service.model_dump(include=set(RawService.model_fields)),
                is_complete=not missing,
                missing_info=missing,
                questions=[f"Please provide more details about {service.name}"] if missing else [],
                issue_kinds=list(dict.fromkeys(kinds)),
            )
            if missing:
                incomplete.append(validated)
                questions.extend(validated.questions)
            else:
                complete.append(validated)

        if not services:
            questions.append("What type of landscaping service do you need?")

        needs_clarification = not services or bool(incomplete)
        confidences = [service.confidence for service in services]
        result = ValidationResult(
            complete_services=complete,
            incomplete_services=incomplete,
            clarification_questions=questions,
            needs_clarification=needs_clarification,
            ready_for_mapping=bool(complete) and not needs_clarification,
            overall_confidence=round(sum(confidences) / len(confidences), 3) if confidences else 0.0,
        )

        return build_step_result(
            self.step_name,
            result,
            started_at,
            intermediate_output={
                "mock": True,
                "completeCount": len(complete),
                "incompleteCount": len(incomplete),
            },
            info=[f"Mock validation: {len(complete)} complete, {len(incomplete)} incomplete"],
        )


class MockMapper(ServiceMapper):
    """Maps exact canonical names only, then adds mandatory companions."""

    def __init__(self, catalog: Optional[ServiceCatalog] = None, confidence: float = 0.95):
        self.catalog = catalog or get_default_catalog()
        self.confidence = confidence

    def map(self, services: List[ValidatedService]) -> StepResult:
        started_at = time.perf_counter()

        mapped: List[MappedService] = []
        unmapped: List[UnmappedService] = []
        for service in services:
            entry = self.catalog.get(service.name)
            if entry is None:
                unmapped.append(UnmappedService(
                    name=service.name,
                    original_text=service.original_text,
                    suggestions=self.catalog.suggest(service.name),
                ))
                continue
            mapped.append(MappedService(
                **service.model_dump(include=set(ValidatedService.model_fields)),
                canonical_name=entry.canonical_name,
                lookup_key=entry.lookup_key,
                category=entry.category,
                is_special=entry.is_special,
                match_type="exact",
                mapping_confidence=self.confidence,
            ))

        mapped, warnings = consolidate_services(mapped)
        mapped, companion_warnings = ensure_companions(mapped, self.catalog)
        warnings.extend(companion_warnings)

        result = MappingResult(
            mapped_services=mapped,
            unmapped_services=unmapped,
            special_services=[s for s in mapped if s.is_special],
            mapping_confidence=round(sum(s.mapping_confidence for s in mapped) / len(mapped), 3) if mapped else 0.0,
        )

        return build_step_result(
            self.step_name,
            result,
            started_at,
            intermediate_output={
                "mock": True,
                "mapped": [s.canonical_name for s in mapped],
                "unmapped": [u.name for u in unmapped],
            },
            info=[f"Mock mapping: {len(mapped)} mapped, {len(unmapped)} unmapped"],
            warnings=warnings,
        )


class MockCalculator(PriceCalculator):
    """Prices from flat per-category rates."""

    def __init__(self, rates: Optional[Dict[str, CostRate]] = None):
        self.rates = rates if rates is not None else MOCK_CATEGORY_RATES

    async def calculate(
        self,
        services: List[MappedService],
        tenant_id: Optional[str] = None
    ) -> StepResult:
        started_at = time.perf_counter()

        if not services:
            raise CalculationError("No services provided for calculation")

        priced = []
        for service in services:
            rate = self.rates.get(service.category or "", MOCK_DEFAULT_RATE)
            priced.append(PricedService(
                **service.model_dump(include=set(MappedService.model_fields)),
                unit_cost=rate.unit_cost,
                total_cost=round(rate.unit_cost * service.quantity, 2),
                labor_hours=round(rate.labor_hours_per_unit * service.quantity, 1),
                pricing_source=SOURCE_MOCK,
            ))

        totals = Calculator.calculate_totals(priced)
        result = PricingResult(
            services=priced,
            totals=totals,
            calculation_time_ms=round((time.perf_counter() - started_at) * 1000, 3),
            special_calculations=Calculator.special_calculations(priced),
            pricing_source=SOURCE_MOCK,
        )

        logger.debug("mock_services_priced", service_count=totals.service_count, total_cost=totals.total_cost)

        return build_step_result(
            self.step_name,
            result,
            started_at,
            intermediate_output={
                "mock": True,
                "totalCost": totals.total_cost,
                "totalLaborHours": totals.total_labor_hours,
            },
            info=[f"Mock calculation: {len(priced)} services"],
        )
