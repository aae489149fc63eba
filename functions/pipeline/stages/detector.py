"""Service Detector stage.

Splits a customer utterance into segments and extracts candidate
(name, quantity, unit) triples from each one:

1. Known service phrases (catalog canonical names and synonyms), longest first
2. Dimension pairs ("15x10", "12 by 8") multiplied into an area in sqft
3. Explicit quantity + unit phrases ("45 square feet", "3.5 yards")
4. Bare numbers, which take the service's unit when it is counted in items

Irrigation details (zone counts, boring under hardscape) are read from the
whole utterance and attached to irrigation candidates as attributes.
"""

import re
import time
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Pattern, Tuple

import structlog

from models.catalog import CatalogEntry, ServiceCategory
from models.services import CategoryHint, RawService
from models.pipeline_result import DetectionResult, InputAnalysis, StepResult
from pipeline.interfaces import ServiceDetector, build_step_result
from services.service_catalog import (
    ServiceCatalog,
    UNIT_ALIASES,
    canonical_unit,
    get_default_catalog,
    prefer_category,
    units_compatible,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# Patterns
# =============================================================================

NUMBER = r"-?\d+(?:\.\d+)?"

SEGMENT_SEPARATOR_PATTERN = re.compile(r"\s+(?:and|plus|also)\s+|\s*[,;\n]\s*", re.IGNORECASE)
THOUSANDS_SEPARATOR_PATTERN = re.compile(r"(?<=\d),(?=\d{3}\b)")

DIMENSION_PATTERN = re.compile(
    rf"(?<![\w.])({NUMBER})\s*(?:'|ft\.?|feet|foot)?\s*(?:x|by|\*|×)\s*({NUMBER})\s*(?:'|ft\.?|feet|foot)?(?![a-z])"
)

ZONE_PATTERN = re.compile(rf"(?<![\w.])({NUMBER})\s+(?:(turf|drip|lawn|bed)\s+)?zones?(?![a-z])")


def _unit_alternation() -> str:
    phrases = sorted(UNIT_ALIASES.keys(), key=len, reverse=True)
    return "|".join(r"\s*".join(re.escape(part) for part in phrase.split(" ")) for phrase in phrases)


QUANTITY_PATTERN = re.compile(rf"(?<![\w.])({NUMBER})\s*({_unit_alternation()})(?![a-z])")
BARE_NUMBER_PATTERN = re.compile(rf"(?<![\w.])({NUMBER})(?![\w.])")
WORD_PATTERN = re.compile(r"[a-z][a-z'-]*")

BORING_NEGATIVE_PATTERN = re.compile(
    r"\b(?:no|without|not|don't|dont|won't|wont)\b[\w\s']{0,30}?\bbor(?:e|ing)\b"
    r"|\bbor(?:e|ing)\b[\w\s']{0,20}?\bnot\s+(?:needed|required|necessary)\b"
)
BORING_POSITIVE_PATTERN = re.compile(r"\bbor(?:e|ing)\b")

STOP_WORDS = frozenset({
    "and", "the", "a", "an", "of", "in", "on", "at", "to", "for", "with", "by",
    "feet", "ft", "sq", "square", "area", "about", "around", "some", "need",
    "needs", "want", "would", "like", "please", "our", "my", "we", "get",
    "also", "plus", "add", "install", "new",
})


@dataclass
class _PhraseMatch:
    """A known service phrase found in a segment."""

    start: int
    end: int
    phrase: str
    entry: CatalogEntry
    is_canonical: bool
    candidates: List[CatalogEntry] = field(default_factory=list)


@dataclass
class _Quantity:
    """A numeric quantity found in a segment."""

    start: int
    end: int
    value: float
    unit: str
    source: str


def _overlaps(start: int, end: int, taken: List[Tuple[int, int]]) -> bool:
    return any(start < taken_end and taken_start < end for taken_start, taken_end in taken)


def _distance(a: Tuple[int, int], b: Tuple[int, int]) -> int:
    if a[1] <= b[0]:
        return b[0] - a[1]
    if b[1] <= a[0]:
        return a[0] - b[1]
    return 0


class Detector(ServiceDetector):
    """Pattern-based service detector backed by the service catalog."""

    def __init__(
        self,
        catalog: Optional[ServiceCatalog] = None,
        base_confidence: float = 0.85,
        canonical_confidence: float = 0.95,
        long_phrase_bonus: float = 0.05,
        category_hint_bonus: float = 0.05,
        max_confidence: float = 0.95,
        unknown_phrase_confidence: float = 0.5
    ):
        """Initialize Detector.

        Args:
            catalog: Service catalog (default process catalog).
            base_confidence: Confidence for a synonym match.
            canonical_confidence: Confidence for a canonical-name match.
            long_phrase_bonus: Added for synonyms longer than ten characters.
            category_hint_bonus: Added when the entry matches the segment's hint.
            max_confidence: Cap for any detection confidence.
            unknown_phrase_confidence: Confidence for unrecognized phrases with a quantity.
        """
        self.catalog = catalog or get_default_catalog()
        self.base_confidence = base_confidence
        self.canonical_confidence = canonical_confidence
        self.long_phrase_bonus = long_phrase_bonus
        self.category_hint_bonus = category_hint_bonus
        self.max_confidence = max_confidence
        self.unknown_phrase_confidence = unknown_phrase_confidence

        self._phrase_patterns = self._compile_phrase_patterns()
        self._separator_phrase_patterns = [
            pattern for phrase, pattern, _ in self._phrase_patterns
            if SEGMENT_SEPARATOR_PATTERN.search(phrase)
        ]
        self._unit_implied_entries = self._build_unit_implied_entries()

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def _compile_phrase_patterns(self) -> List[Tuple[str, Pattern, bool]]:
        phrases: Dict[str, bool] = {}
        for synonym in self.catalog.synonyms():
            phrases[synonym] = False
        for name in self.catalog.canonical_names():
            phrases[name.lower()] = True

        ordered = sorted(phrases.items(), key=lambda item: len(item[0]), reverse=True)
        return [
            (phrase, re.compile(rf"(?<![a-z0-9]){re.escape(phrase)}s?(?![a-z0-9])"), is_canonical)
            for phrase, is_canonical in ordered
        ]

    def _build_unit_implied_entries(self) -> Dict[str, CatalogEntry]:
        """Units that identify exactly one catalog entry (e.g., zones)."""
        by_unit: Dict[str, List[CatalogEntry]] = {}
        for entry in self.catalog.entries():
            by_unit.setdefault(entry.unit, []).append(entry)
        return {
            unit: entries[0] for unit, entries in by_unit.items()
            if len(entries) == 1 and entries[0].is_count_based
        }

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def detect(
        self,
        text: str,
        category_hints: Optional[List[CategoryHint]] = None
    ) -> StepResult:
        started_at = time.perf_counter()
        info: List[str] = []
        warnings: List[str] = []

        if not text or not text.strip():
            info.append("Input is empty")
            return build_step_result(
                self.step_name,
                DetectionResult(),
                started_at,
                intermediate_output={"segments": [], "serviceCount": 0},
                info=info,
            )

        normalized = THOUSANDS_SEPARATOR_PATTERN.sub("", text.strip())

        if category_hints:
            segments = [
                (THOUSANDS_SEPARATOR_PATTERN.sub("", hint.segment.strip()), hint.category)
                for hint in category_hints
                if hint.segment and hint.segment.strip()
            ]
            info.append(f"Using {len(segments)} upstream segments")
        else:
            segments = [(segment, None) for segment in self.split_segments(normalized)]
            info.append(f"Split input into {len(segments)} segments")

        services: List[RawService] = []
        leftover: List[str] = []
        for segment, hint in segments:
            if hint and hint not in {category.value for category in ServiceCategory}:
                warnings.append(f"Unknown category hint '{hint}' ignored")
                hint = None
            segment_services, segment_leftover = self._extract_segment(segment, hint)
            services.extend(segment_services)
            leftover.extend(segment_leftover)

        irrigation_attributes = self.extract_irrigation_attributes(normalized)
        services = [self._attach_attributes(service, irrigation_attributes) for service in services]

        for service in services:
            if service.quantity <= 0:
                warnings.append(f"Non-positive quantity for '{service.name}': {service.quantity:g}")

        result = DetectionResult(
            services=services,
            unmapped_text=leftover,
            input_analysis=self._analyze(services),
        )

        logger.info(
            "services_detected",
            segment_count=len(segments),
            service_count=len(services),
            overall_confidence=result.input_analysis.overall_confidence,
        )

        return build_step_result(
            self.step_name,
            result,
            started_at,
            intermediate_output={
                "segments": [segment for segment, _ in segments],
                "serviceCount": len(services),
                "services": [
                    {"name": s.name, "quantity": s.quantity, "unit": s.unit, "confidence": s.confidence}
                    for s in services
                ],
                "unmappedText": leftover,
            },
            info=info,
            warnings=warnings,
        )

    def split_segments(self, text: str) -> List[str]:
        """Split text on and/plus/also, commas, semicolons and newlines.

        Separators inside a known service phrase (e.g., "seed and straw")
        do not split.
        """
        lowered = text.lower()
        protected = [
            (match.start(), match.end())
            for pattern in self._separator_phrase_patterns
            for match in pattern.finditer(lowered)
        ]

        pieces = []
        last = 0
        for match in SEGMENT_SEPARATOR_PATTERN.finditer(text):
            if _overlaps(match.start(), match.end(), protected):
                continue
            pieces.append(text[last:match.start()])
            last = match.end()
        pieces.append(text[last:])
        return [piece.strip() for piece in pieces if piece.strip()]

    @staticmethod
    def extract_irrigation_attributes(text: str) -> Dict[str, Any]:
        """Read zone counts and the boring answer from the whole utterance."""
        lowered = text.lower()
        attributes: Dict[str, Any] = {"zone_count": None, "boring_required": None}

        zone_total = 0.0
        for match in ZONE_PATTERN.finditer(lowered):
            count = float(match.group(1))
            zone_type = match.group(2)
            zone_total += count
            if zone_type:
                key = f"{zone_type}_zones"
                attributes[key] = attributes.get(key, 0) + count
        if zone_total:
            attributes["zone_count"] = zone_total

        if BORING_NEGATIVE_PATTERN.search(lowered):
            attributes["boring_required"] = False
        elif BORING_POSITIVE_PATTERN.search(lowered):
            attributes["boring_required"] = True

        return attributes

    # -------------------------------------------------------------------------
    # Segment extraction
    # -------------------------------------------------------------------------

    def _extract_segment(
        self,
        segment: str,
        category_hint: Optional[str]
    ) -> Tuple[List[RawService], List[str]]:
        lowered = segment.lower()
        taken: List[Tuple[int, int]] = []

        phrase_matches = self._find_phrases(lowered, category_hint, taken)
        quantities = self._find_quantities(lowered, taken)

        services: List[RawService] = []
        used: List[int] = []
        for match in sorted(phrase_matches, key=lambda m: m.start):
            quantity = self._assign_quantity(match, quantities, used)
            if quantity is not None and quantity.unit:
                match.entry = prefer_category(match.candidates, category_hint, quantity.unit)
            services.append(self._build_service(match, quantity, segment, category_hint))

        # Quantities left over: a unit naming exactly one service implies it
        matched_names = {match.entry.canonical_name for match in phrase_matches}
        for index, quantity in enumerate(quantities):
            entry = self._unit_implied_entries.get(quantity.unit)
            if entry and index not in used and entry.canonical_name not in matched_names:
                used.append(index)
                matched_names.add(entry.canonical_name)
                services.append(RawService(
                    name=entry.canonical_name,
                    quantity=quantity.value,
                    unit=quantity.unit,
                    confidence=self.base_confidence,
                    original_text=segment,
                    category_hint=category_hint,
                ))

        leftover_words = self._leftover_words(lowered, taken)

        # Unrecognized phrase with a quantity: keep it as a low-confidence candidate
        unused = [q for index, q in enumerate(quantities) if index not in used]
        if not services and unused and leftover_words:
            quantity = unused[0]
            services.append(RawService(
                name=" ".join(leftover_words),
                quantity=quantity.value,
                unit=quantity.unit,
                confidence=self.unknown_phrase_confidence,
                original_text=segment,
                category_hint=category_hint,
            ))
            leftover_words = []

        return services, leftover_words

    def _find_phrases(
        self,
        lowered: str,
        category_hint: Optional[str],
        taken: List[Tuple[int, int]]
    ) -> List[_PhraseMatch]:
        matches: List[_PhraseMatch] = []
        for phrase, pattern, is_canonical in self._phrase_patterns:
            for found in pattern.finditer(lowered):
                if _overlaps(found.start(), found.end(), taken):
                    continue
                if is_canonical:
                    candidates = [self.catalog.get(phrase)]
                else:
                    candidates = self.catalog.entries_for_synonym(phrase)
                entry = prefer_category(candidates, category_hint)
                taken.append((found.start(), found.end()))
                matches.append(_PhraseMatch(
                    found.start(), found.end(), phrase, entry, is_canonical, candidates
                ))
        return matches

    def _find_quantities(self, lowered: str, taken: List[Tuple[int, int]]) -> List[_Quantity]:
        quantities: List[_Quantity] = []

        for found in DIMENSION_PATTERN.finditer(lowered):
            if _overlaps(found.start(), found.end(), taken):
                continue
            area = float(found.group(1)) * float(found.group(2))
            taken.append((found.start(), found.end()))
            quantities.append(_Quantity(found.start(), found.end(), area, "sqft", "dimensions"))

        for found in ZONE_PATTERN.finditer(lowered):
            if _overlaps(found.start(), found.end(), taken):
                continue
            taken.append((found.start(), found.end()))
            quantities.append(_Quantity(found.start(), found.end(), float(found.group(1)), "zone", "zones"))

        for found in QUANTITY_PATTERN.finditer(lowered):
            if _overlaps(found.start(), found.end(), taken):
                continue
            unit = canonical_unit(found.group(2))
            taken.append((found.start(), found.end()))
            quantities.append(_Quantity(found.start(), found.end(), float(found.group(1)), unit, "unit"))

        for found in BARE_NUMBER_PATTERN.finditer(lowered):
            if _overlaps(found.start(), found.end(), taken):
                continue
            taken.append((found.start(), found.end()))
            quantities.append(_Quantity(found.start(), found.end(), float(found.group(1)), "", "bare"))

        return quantities

    def _assign_quantity(
        self,
        match: _PhraseMatch,
        quantities: List[_Quantity],
        used: List[int]
    ) -> Optional[_Quantity]:
        """Nearest unused quantity, preferring units one of the phrase's services accepts."""
        entry = match.entry
        candidates = match.candidates or [entry]
        names = {candidate.canonical_name for candidate in candidates}
        available = [(index, q) for index, q in enumerate(quantities) if index not in used]

        def accepted(quantity: _Quantity) -> bool:
            return any(units_compatible(quantity.unit, candidate.unit) for candidate in candidates)

        def implies_other_service(quantity: _Quantity) -> bool:
            implied = self._unit_implied_entries.get(quantity.unit)
            return implied is not None and implied.canonical_name not in names

        tiers = [
            [(i, q) for i, q in available if q.unit and accepted(q)],
            [(i, q) for i, q in available if q.unit and not implies_other_service(q)],
            [(i, q) for i, q in available if not q.unit],
        ]
        if entry.unit == "setup":
            tiers = tiers[:1]
        span = (match.start, match.end)
        for tier in tiers:
            if tier:
                index, quantity = min(tier, key=lambda item: _distance((item[1].start, item[1].end), span))
                used.append(index)
                return quantity
        return None

    def _build_service(
        self,
        match: _PhraseMatch,
        quantity: Optional[_Quantity],
        segment: str,
        category_hint: Optional[str]
    ) -> RawService:
        entry = match.entry
        if quantity is None:
            if entry.unit == "setup":
                value, unit = 1.0, "setup"
            else:
                value, unit = 0.0, ""
        elif quantity.unit:
            value, unit = quantity.value, quantity.unit
        else:
            value = quantity.value
            unit = entry.unit if entry.is_count_based else ""

        return RawService(
            name=match.phrase,
            quantity=value,
            unit=unit,
            confidence=self._score(match, category_hint),
            original_text=segment,
            category_hint=category_hint,
        )

    def _score(self, match: _PhraseMatch, category_hint: Optional[str]) -> float:
        if match.is_canonical:
            confidence = self.canonical_confidence
        else:
            confidence = self.base_confidence
            if len(match.phrase) > 10:
                confidence += self.long_phrase_bonus
        if category_hint and match.entry.category == category_hint:
            confidence += self.category_hint_bonus
        return round(min(confidence, self.max_confidence), 2)

    @staticmethod
    def _leftover_words(lowered: str, taken: List[Tuple[int, int]]) -> List[str]:
        chars = list(lowered)
        for start, end in taken:
            for index in range(start, end):
                chars[index] = " "
        remaining = "".join(chars)
        return [
            word for word in WORD_PATTERN.findall(remaining)
            if word not in STOP_WORDS and len(word) > 2
        ]

    # -------------------------------------------------------------------------
    # Attributes and analysis
    # -------------------------------------------------------------------------

    def _attach_attributes(self, service: RawService, irrigation: Dict[str, Any]) -> RawService:
        entry = self.catalog.resolve(service.name, service.category_hint, service.unit)
        if entry is None or entry.category != ServiceCategory.IRRIGATION.value:
            return service

        attributes = dict(irrigation)
        if attributes.get("zone_count") is None and service.unit == "zone" and service.quantity > 0:
            attributes["zone_count"] = service.quantity
        return service.model_copy(update={"attributes": {**service.attributes, **attributes}})

    @staticmethod
    def _analyze(services: List[RawService]) -> InputAnalysis:
        confidences = [service.confidence for service in services]
        return InputAnalysis(
            has_multiple_services=len(services) > 1,
            has_quantities=any(service.quantity != 0 for service in services),
            has_units=any(service.unit for service in services),
            overall_confidence=round(sum(confidences) / len(confidences), 3) if confidences else 0.0,
        )
