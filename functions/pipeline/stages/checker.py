"""Completeness Checker stage.

A service is complete when its quantity is positive, its unit is known and
any special-service checklist passes. The checker never raises for missing
information: it returns clarification questions as ordinary data.
"""

import time
from typing import Dict, List, Optional, Tuple

import structlog

from config.errors import ErrorCode
from config.settings import MatchingThresholds
from models.catalog import CatalogEntry
from models.services import RawService, ValidatedService
from models.pipeline_result import StepResult, UnmappedService, ValidationResult
from pipeline.interfaces import CompletenessChecker, build_step_result
from services.service_catalog import ServiceCatalog, get_default_catalog, unit_display_name

logger = structlog.get_logger(__name__)


NO_SERVICES_QUESTION = (
    "What type of landscaping service do you need? "
    "For example: mulch, edging, a paver patio, sod or irrigation."
)
GENERIC_DETAIL_QUESTION = (
    "Could you share a bit more detail about the work you need, "
    "including the service type and the size or quantity?"
)

# Special-service checklists keyed by catalog category:
# (attribute, missing-info label, question template)
SPECIAL_REQUIREMENTS: Dict[str, List[Tuple[str, str, str]]] = {
    "irrigation": [
        (
            "zone_count",
            "zone count",
            "How many irrigation zones do you need (turf zones vs drip zones)?",
        ),
        (
            "boring_required",
            "boring requirement",
            "Will boring under driveways or sidewalks be required for the irrigation lines?",
        ),
    ],
}

# Business-rule sanity thresholds (warnings only)
MIN_PATIO_SQFT = 50
MAX_REASONABLE_QUANTITY = 10000


class Checker(CompletenessChecker):
    """Rule-based completeness checker."""

    def __init__(
        self,
        catalog: Optional[ServiceCatalog] = None,
        thresholds: Optional[MatchingThresholds] = None
    ):
        self.catalog = catalog or get_default_catalog()
        self.thresholds = thresholds or MatchingThresholds()

    def check(self, services: List[RawService]) -> StepResult:
        started_at = time.perf_counter()
        warnings: List[str] = []
        info: List[str] = []

        complete: List[ValidatedService] = []
        incomplete: List[ValidatedService] = []
        questions: List[str] = []
        unrecognized: List[UnmappedService] = []

        for service in services:
            validated = self.validate_service(service)
            if validated.is_complete:
                complete.append(validated)
            else:
                incomplete.append(validated)
            if ErrorCode.UNMAPPABLE_SERVICE in validated.issue_kinds:
                unrecognized.append(UnmappedService(
                    name=service.name,
                    original_text=service.original_text,
                    suggestions=self.suggestions_for(service),
                ))
            questions.extend(validated.questions)
            warnings.extend(self._business_rule_warnings(validated))

        if services:
            overall_confidence = sum(s.confidence for s in services) / len(services)
        else:
            overall_confidence = self.thresholds.empty_confidence_floor
            questions.append(NO_SERVICES_QUESTION)

        below_threshold = overall_confidence < self.thresholds.completion_threshold
        if below_threshold and services:
            questions.append(GENERIC_DETAIL_QUESTION)
            info.append(
                f"Overall confidence {overall_confidence:.2f} below "
                f"{self.thresholds.completion_threshold:.2f}"
            )

        questions = self._bounded_unique(questions)
        needs_clarification = (not services) or bool(incomplete) or below_threshold

        result = ValidationResult(
            complete_services=complete,
            incomplete_services=incomplete,
            clarification_questions=questions,
            needs_clarification=needs_clarification,
            ready_for_mapping=bool(complete) and not needs_clarification,
            overall_confidence=round(overall_confidence, 3),
            unrecognized_services=unrecognized,
        )

        logger.info(
            "completeness_checked",
            complete=len(complete),
            incomplete=len(incomplete),
            overall_confidence=result.overall_confidence,
            needs_clarification=needs_clarification,
        )

        return build_step_result(
            self.step_name,
            result,
            started_at,
            intermediate_output={
                "completeCount": len(complete),
                "incompleteCount": len(incomplete),
                "unrecognized": [u.name for u in unrecognized],
                "overallConfidence": result.overall_confidence,
                "questions": questions,
                "summary": completeness_summary(result),
            },
            info=info,
            warnings=warnings,
        )

    def validate_service(self, service: RawService) -> ValidatedService:
        """Apply the completeness rule to one service."""
        entry = self.catalog.resolve(service.name, service.category_hint, service.unit)
        display = entry.canonical_name if entry else service.name
        unrecognized = entry is None and service.confidence < self.thresholds.completion_threshold
        missing: List[str] = []
        questions: List[str] = []
        kinds: List[str] = []

        if unrecognized:
            missing.append("service")
            kinds.append(ErrorCode.UNMAPPABLE_SERVICE)
            questions.append(unmapped_question(service.name, self.suggestions_for(service)))

        if service.quantity < 0:
            missing.append("quantity")
            kinds.append(ErrorCode.INVALID_QUANTITY)
            questions.append(
                f"The quantity for {display} can't be negative. How much {display} do you need?"
            )
        elif service.quantity == 0:
            missing.append("quantity")
            kinds.append(ErrorCode.INVALID_QUANTITY)
            questions.append(f"How much {display} do you need?")

        if not service.unit and not unrecognized:
            missing.append("unit")
            kinds.append(ErrorCode.INCOMPLETE_SERVICE)
            questions.append(
                f"What unit should we use for {display}? (e.g., {self.suggest_unit(service, entry)})"
            )

        if entry is not None and entry.is_special:
            for attribute, label, question in SPECIAL_REQUIREMENTS.get(entry.category, []):
                if service.attributes.get(attribute) is None:
                    missing.append(label)
                    kinds.append(ErrorCode.INCOMPLETE_SERVICE)
                    questions.append(question)

        return ValidatedService(
            **service.model_dump(include=set(RawService.model_fields)),
            is_complete=not missing,
            missing_info=missing,
            questions=questions,
            issue_kinds=_distinct(kinds),
        )

    def suggestions_for(self, service: RawService) -> List[str]:
        """Catalog names close to an unrecognized service name."""
        return self.catalog.suggest(service.name, self.thresholds.max_suggestions)

    @staticmethod
    def suggest_unit(service: RawService, entry: Optional[CatalogEntry]) -> str:
        """Suggest a unit from the catalog entry, else from keywords in the name."""
        if entry is not None:
            return unit_display_name(entry.unit)

        name = service.name.lower()
        if any(word in name for word in ("mulch", "patio", "sod", "seed")):
            return "square feet"
        if any(word in name for word in ("edging", "wall", "border")):
            return "linear feet"
        if any(word in name for word in ("tree", "shrub", "plant")):
            return "each"
        if any(word in name for word in ("topsoil", "soil", "gravel")):
            return "cubic yards"
        return "square feet, linear feet, or each"

    def _business_rule_warnings(self, service: ValidatedService) -> List[str]:
        warnings = []
        entry = self.catalog.resolve(service.name, service.category_hint, service.unit)
        if entry is not None:
            if entry.canonical_name.startswith("Paver Patio") and 0 < service.quantity < MIN_PATIO_SQFT:
                warnings.append(f"Patio area {service.quantity:g} sqft is unusually small")
            if entry.unit == "zone" and 0 < service.quantity < 1:
                warnings.append("Irrigation needs at least one zone")
        if service.quantity > MAX_REASONABLE_QUANTITY:
            warnings.append(f"Quantity {service.quantity:g} for '{service.name}' is unusually large")
        return warnings

    def _bounded_unique(self, questions: List[str]) -> List[str]:
        return _distinct(questions)[:self.thresholds.max_clarification_questions]


def completeness_summary(result: ValidationResult) -> str:
    """One-line human-readable summary of a ValidationResult."""
    complete = len(result.complete_services)
    incomplete = len(result.incomplete_services)
    total = complete + incomplete

    if total == 0:
        return "No services detected"
    if incomplete == 0 and not result.needs_clarification:
        return f"All {total} service(s) ready for pricing"
    if incomplete == 0:
        return f"{total} service(s) found, but more detail is needed"
    if complete == 0:
        return f"All {total} service(s) need more information"
    return f"{complete} of {total} service(s) ready, {incomplete} need more information"


def unmapped_question(name: str, suggestions: List[str]) -> str:
    """Question for a service name the catalog does not recognize."""
    if suggestions:
        return (
            f"We couldn't match \"{name}\" to a service we offer. "
            f"Did you mean: {', '.join(suggestions)}?"
        )
    return (
        f"We couldn't match \"{name}\" to a service we offer. "
        f"Could you describe it differently?"
    )


# Most specific first
ISSUE_KIND_PRIORITY = [
    ErrorCode.INVALID_QUANTITY,
    ErrorCode.UNMAPPABLE_SERVICE,
    ErrorCode.INCOMPLETE_SERVICE,
]


def primary_issue_kind(result: ValidationResult) -> Optional[str]:
    """Error kind that best explains why a ValidationResult needs clarification."""
    if not result.needs_clarification:
        return None
    if not result.all_services:
        return ErrorCode.NO_SERVICES_DETECTED

    kinds = {kind for service in result.incomplete_services for kind in service.issue_kinds}
    for kind in ISSUE_KIND_PRIORITY:
        if kind in kinds:
            return kind
    # Low overall confidence alone
    return ErrorCode.INCOMPLETE_SERVICE


def _distinct(values: List[str]) -> List[str]:
    distinct: List[str] = []
    for value in values:
        if value not in distinct:
            distinct.append(value)
    return distinct
