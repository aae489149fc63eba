"""Service Mapper stage.

Resolves each validated service to a catalog entry:

1. Exact canonical name        -> exact_match_confidence (0.95)
2. Synonym table               -> synonym_match_confidence (0.85)
3. Fuzzy (normalized Levenshtein against every synonym), accepted above
   fuzzy_match_threshold (0.70)  -> similarity * fuzzy_confidence_scale (0.8)

Among entries sharing a synonym the one whose unit matches the request wins.
A unit that the resolved entry still does not accept multiplies the
confidence by unit_mismatch_penalty and the service is held back from
pricing with a unit question. Unresolved services are returned with
suggestions. Mapped lines sharing a lookup key are merged
and missing mandatory companions (irrigation setup) are prepended.
"""

import re
import time
from typing import List, Optional, Tuple

import structlog

from config.settings import MatchingThresholds
from models.catalog import CatalogEntry
from models.services import MappedService, ValidatedService
from models.pipeline_result import MappingResult, StepResult, UnitMismatch, UnmappedService
from pipeline.composition import consolidate_services, ensure_companions
from pipeline.interfaces import ServiceMapper, build_step_result
from services.service_catalog import (
    ServiceCatalog,
    get_default_catalog,
    prefer_category,
    unit_display_name,
    units_compatible,
)
from utils.similarity import best_match

logger = structlog.get_logger(__name__)

MATCH_EXACT = "exact"
MATCH_SYNONYM = "synonym"
MATCH_FUZZY = "fuzzy"


class Mapper(ServiceMapper):
    """Catalog mapper with exact, synonym and fuzzy resolution."""

    def __init__(
        self,
        catalog: Optional[ServiceCatalog] = None,
        thresholds: Optional[MatchingThresholds] = None
    ):
        self.catalog = catalog or get_default_catalog()
        self.thresholds = thresholds or MatchingThresholds()
        # Longest synonyms first so containment prefers the most specific phrase
        self._synonyms_by_length = sorted(self.catalog.synonyms(), key=len, reverse=True)

    def map(self, services: List[ValidatedService]) -> StepResult:
        started_at = time.perf_counter()
        warnings: List[str] = []
        info: List[str] = []

        mapped: List[MappedService] = []
        unmapped: List[UnmappedService] = []
        mismatched: List[UnitMismatch] = []

        for service in services:
            mapped_service = self.map_service(service)
            if mapped_service is None:
                suggestions = self.catalog.suggest(service.name, self.thresholds.max_suggestions)
                unmapped.append(UnmappedService(
                    name=service.name,
                    original_text=service.original_text,
                    suggestions=suggestions,
                ))
                warnings.append(f"No catalog match for '{service.name}'")
                continue

            if not mapped_service.unit_compatible:
                mismatch = self.unit_mismatch(mapped_service)
                mismatched.append(mismatch)
                warnings.append(
                    f"Unit '{service.unit}' does not match '{mapped_service.canonical_name}' "
                    f"(expects {mismatch.expected_unit})"
                )
                continue

            info.append(
                f"'{service.name}' -> {mapped_service.canonical_name} "
                f"({mapped_service.match_type}, {mapped_service.mapping_confidence:.2f})"
            )
            mapped.append(mapped_service)

        mapped, merge_warnings = consolidate_services(mapped)
        warnings.extend(merge_warnings)
        mapped, companion_warnings = ensure_companions(
            mapped, self.catalog, self.thresholds.composed_service_confidence
        )
        warnings.extend(companion_warnings)

        if mapped:
            mapping_confidence = sum(s.mapping_confidence for s in mapped) / len(mapped)
        else:
            mapping_confidence = 0.0

        result = MappingResult(
            mapped_services=mapped,
            unmapped_services=unmapped,
            special_services=[service for service in mapped if service.is_special],
            mismatched_services=mismatched,
            mapping_confidence=round(mapping_confidence, 3),
        )

        logger.info(
            "services_mapped",
            mapped=len(mapped),
            unmapped=len(unmapped),
            mismatched=len(mismatched),
            mapping_confidence=result.mapping_confidence,
        )

        return build_step_result(
            self.step_name,
            result,
            started_at,
            intermediate_output={
                "mapped": [
                    {
                        "name": s.name,
                        "canonicalName": s.canonical_name,
                        "lookupKey": s.lookup_key,
                        "matchType": s.match_type,
                        "confidence": s.mapping_confidence,
                    }
                    for s in mapped
                ],
                "unmapped": [u.name for u in unmapped],
                "mismatched": [m.name for m in mismatched],
                "mappingConfidence": result.mapping_confidence,
            },
            info=info,
            warnings=warnings,
        )

    def map_service(self, service: ValidatedService) -> Optional[MappedService]:
        """Resolve one service; None when no strategy matches."""
        entry, match_type, confidence = self.resolve(service.name, service.category_hint, service.unit)
        if entry is None:
            return None

        compatible = not service.unit or units_compatible(service.unit, entry.unit)
        if not compatible:
            confidence *= self.thresholds.unit_mismatch_penalty

        return MappedService(
            **service.model_dump(include=set(ValidatedService.model_fields)),
            canonical_name=entry.canonical_name,
            lookup_key=entry.lookup_key,
            category=entry.category,
            is_special=entry.is_special,
            match_type=match_type,
            mapping_confidence=round(min(confidence, 1.0), 3),
            unit_compatible=compatible,
        )

    def resolve(
        self,
        name: str,
        category_hint: Optional[str] = None,
        unit: Optional[str] = None
    ) -> Tuple[Optional[CatalogEntry], Optional[str], float]:
        """Return (entry, match type, confidence) for a service name."""
        text = re.sub(r"\s+", " ", (name or "").strip().lower())
        if not text:
            return None, None, 0.0

        entry = self.catalog.get(text)
        if entry is not None:
            return entry, MATCH_EXACT, self.thresholds.exact_match_confidence

        entry = (
            self.catalog.find_by_synonym(text, category_hint, unit)
            or self._contained_synonym(text, category_hint, unit)
        )
        if entry is not None:
            return entry, MATCH_SYNONYM, self.thresholds.synonym_match_confidence

        synonym, score = best_match(text, self.catalog.synonyms())
        if synonym is not None and score > self.thresholds.fuzzy_match_threshold:
            entry = prefer_category(self.catalog.entries_for_synonym(synonym), category_hint, unit)
            return entry, MATCH_FUZZY, score * self.thresholds.fuzzy_confidence_scale

        return None, None, 0.0

    def _contained_synonym(
        self,
        text: str,
        category_hint: Optional[str],
        unit: Optional[str] = None
    ) -> Optional[CatalogEntry]:
        for synonym in self._synonyms_by_length:
            if re.search(rf"(?<![a-z0-9]){re.escape(synonym)}(?![a-z0-9])", text):
                return self.catalog.find_by_synonym(synonym, category_hint, unit)
        return None

    def unit_mismatch(self, service: MappedService) -> UnitMismatch:
        """Describe a mapped service whose unit the catalog entry cannot price."""
        expected = self.catalog.get(service.canonical_name).unit
        expected_display = unit_display_name(expected)
        return UnitMismatch(
            name=service.name,
            canonical_name=service.canonical_name,
            quantity=service.quantity,
            unit=service.unit,
            expected_unit=expected,
            question=(
                f"{service.canonical_name} is priced in {expected_display}, but the request gave "
                f"{service.quantity:g} {unit_display_name(service.unit)}. "
                f"How many {expected_display} do you need?"
            ),
        )
