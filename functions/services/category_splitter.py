"""Category splitter for the quote pipeline.

Splits a customer message into one segment per service and tags each
segment with a catalog category. The Detector uses the result as category
hints. The LLM path (gpt-4o-mini via LangChain) is used when an OpenAI key
is configured; it is bounded by a timeout and falls back to deterministic
keyword rules on any failure.
"""

import asyncio
import re
from typing import List, Optional, Tuple

import structlog
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from config.errors import QuoteError
from config.settings import settings
from models.catalog import ServiceCategory
from models.services import CategoryHint
from services.llm_service import LLMService

logger = structlog.get_logger()

SOURCE_LLM = "llm"
SOURCE_KEYWORDS = "keywords"

SPLITTER_SYSTEM_PROMPT = """You are a landscaping category identifier and service splitter. Analyze the input for ALL services and split them cleanly.

STEP 1 - CATEGORY DETECTION (generous matching):
- hardscape: patio, pavers, wall, retaining walls, flagstone, walkway, steps
- planting: tree, shrub, flower, plant, lawn, seed, straw, sod, sod removal
- drainage: drain, downspout, spout, gutter, french, creek, flow well
- materials: mulch, topsoil, dirt, soil, rock, chips, rainbow
- edging: edging, border, metal, stone edgers, spade
- structures: kitchen, pergola, cedar, intellishade
- irrigation: irrigation, sprinkler, zones, drip, boring

STEP 2 - SERVICE SPLITTING:
Split using separation clues: 'and', 'plus', 'also', ',', 'with', numbers followed by different service types, different units/measurements.

OUTPUT JSON:
{
  "detected_categories": ["category1", "category2"],
  "separated_services": [
    "individual service text 1, category1",
    "individual service text 2, category2"
  ],
  "service_count": 2,
  "confidence": "high"
}

EXAMPLE:
Input: "20x15 patio with 100 sqft mulch and 40 feet metal edging"
Output: {
  "detected_categories": ["hardscape", "materials", "edging"],
  "separated_services": [
    "20x15 patio, hardscape",
    "100 sqft mulch, materials",
    "40 feet metal edging, edging"
  ],
  "service_count": 3,
  "confidence": "high"
}"""

# Ordered: the first matching category wins for a segment
CATEGORY_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("irrigation", ["irrigation", "sprinkler", "sprinklers", "zone", "zones", "drip", "boring"]),
    ("hardscape", ["patio", "pavers", "paver", "wall", "walls", "retaining", "flagstone",
                   "walkway", "steps", "steppers", "concrete", "brick"]),
    ("planting", ["tree", "trees", "shrub", "shrubs", "flower", "flowers", "plant", "plants",
                  "lawn", "seed", "straw", "pot", "sod", "grass", "annuals", "perennial",
                  "perennials", "removal", "excavation"]),
    ("drainage", ["drain", "drainage", "downspout", "spout", "gutter", "french", "creek",
                  "flow", "water"]),
    ("materials", ["mulch", "topsoil", "dirt", "soil", "rock", "ground", "chips", "rainbow"]),
    ("edging", ["edging", "edger", "edgers", "border", "metal", "steel", "aluminum", "spade",
                "stone", "cut", "trim"]),
    ("structures", ["kitchen", "pergola", "gathering", "social", "cedar", "intellishade",
                    "structure"]),
]

# Legacy classifier labels mapped onto catalog categories
CATEGORY_ALIASES = {
    "hardscaping": "hardscape",
    "removal": "planting",
    "structure": "structures",
    "material": "materials",
}

SPLIT_PATTERN = re.compile(r"\b(?:and|plus|also|with)\b|(?<!\d),|,(?!\d{3}\b)|;", re.IGNORECASE)

VALID_CATEGORIES = {category.value for category in ServiceCategory}


class CategorySplit(BaseModel):
    """Segments of a message with one category per segment."""

    categories: List[str] = Field(default_factory=list, description="Distinct categories, first-seen order")
    segments: List[str] = Field(default_factory=list)
    segment_categories: List[Optional[str]] = Field(
        default_factory=list,
        alias="segmentCategories",
        description="Category per segment (None when unknown)"
    )
    confidence: str = Field(default="low", description="high, medium or low")
    source: str = Field(default=SOURCE_KEYWORDS, description="llm or keywords")

    class Config:
        populate_by_name = True

    def to_hints(self) -> List[CategoryHint]:
        return [
            CategoryHint(segment=segment, category=category)
            for segment, category in zip(self.segments, self.segment_categories)
        ]


class _SplitterPayload(BaseModel):
    detected_categories: List[str] = Field(default_factory=list)
    separated_services: List[str] = Field(default_factory=list)
    service_count: int = 0
    confidence: str = "medium"


def normalize_category(category: Optional[str]) -> Optional[str]:
    """Map a classifier label onto a catalog category, or None."""
    if not category:
        return None
    label = category.strip().lower()
    label = CATEGORY_ALIASES.get(label, label)
    return label if label in VALID_CATEGORIES else None


def categorize_segment(segment: str) -> Optional[str]:
    """First category whose keywords appear as whole words in the segment."""
    lowered = segment.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        for keyword in keywords:
            if re.search(rf"\b{re.escape(keyword)}\b", lowered):
                return category
    return None


def keyword_split(text: str) -> CategorySplit:
    """Deterministic split and categorization."""
    parts = [part.strip() for part in SPLIT_PATTERN.split(text or "") if part and part.strip()]
    if not parts:
        return CategorySplit(source=SOURCE_KEYWORDS)

    segment_categories = [categorize_segment(part) for part in parts]
    categories = _distinct(segment_categories)

    known = sum(1 for category in segment_categories if category)
    if known == len(parts):
        confidence = "high"
    elif known:
        confidence = "medium"
    else:
        confidence = "low"

    return CategorySplit(
        categories=categories,
        segments=parts,
        segment_categories=segment_categories,
        confidence=confidence,
        source=SOURCE_KEYWORDS,
    )


class CategorySplitter:
    """Upstream classifier producing category hints for the Detector."""

    def __init__(
        self,
        llm_service: Optional[LLMService] = None,
        timeout_seconds: Optional[float] = None,
        use_llm: Optional[bool] = None
    ):
        """Initialize CategorySplitter.

        Args:
            llm_service: LLM client (default built from settings).
            timeout_seconds: Upper bound for the LLM call (default from settings).
            use_llm: Force the LLM path on or off (default: when a key is configured).
        """
        self.llm = llm_service or LLMService()
        self.timeout_seconds = timeout_seconds or settings.classifier_timeout_seconds
        self.use_llm = self.llm.is_configured if use_llm is None else use_llm

    async def split_and_categorize(self, text: str) -> CategorySplit:
        """Split text into categorized segments.

        Never raises: LLM failures and timeouts fall back to keyword rules.
        """
        if not text or not text.strip():
            return CategorySplit(source=SOURCE_KEYWORDS)

        if not self.use_llm:
            return keyword_split(text)

        try:
            response = await asyncio.wait_for(
                self.llm.generate_json(SPLITTER_SYSTEM_PROMPT, f"USER INPUT: {text}", max_tokens=1000),
                timeout=self.timeout_seconds,
            )
            split = self._parse(response["content"])
        except asyncio.TimeoutError:
            logger.warning("category_splitter_timeout", timeout_seconds=self.timeout_seconds)
            return keyword_split(text)
        except QuoteError as e:
            logger.warning("category_splitter_llm_failed", code=e.code, error=e.message)
            return keyword_split(text)

        if split is None or not split.segments:
            logger.warning("category_splitter_unusable_response")
            return keyword_split(text)

        logger.info(
            "category_split",
            source=split.source,
            segment_count=len(split.segments),
            categories=split.categories,
        )
        return split

    @staticmethod
    def _parse(content) -> Optional[CategorySplit]:
        try:
            payload = _SplitterPayload.model_validate(content)
        except PydanticValidationError:
            return None

        segments: List[str] = []
        segment_categories: List[Optional[str]] = []
        for item in payload.separated_services:
            segment, _, label = item.rpartition(",")
            if not segment:
                segment, label = label, ""
            segment = segment.strip()
            if not segment:
                continue
            segments.append(segment)
            segment_categories.append(normalize_category(label) or categorize_segment(segment))

        categories = _distinct(
            [normalize_category(category) for category in payload.detected_categories] + segment_categories
        )
        confidence = payload.confidence if payload.confidence in ("high", "medium", "low") else "medium"

        return CategorySplit(
            categories=categories,
            segments=segments,
            segment_categories=segment_categories,
            confidence=confidence,
            source=SOURCE_LLM,
        )


def _distinct(categories: List[Optional[str]]) -> List[str]:
    seen: List[str] = []
    for category in categories:
        if category and category not in seen:
            seen.append(category)
    return seen
