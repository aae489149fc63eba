"""Line-item service models.

Each pipeline stage enriches the previous stage's model:
RawService -> ValidatedService -> MappedService -> PricedService.
All of them are request-scoped value objects.
"""

from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field


class RawService(BaseModel):
    """A candidate service extracted from the customer's text."""

    name: str = Field(
        description="Service name as written by the customer (or a catalog name)"
    )
    quantity: float = Field(
        default=0.0,
        description="Requested quantity; zero or negative values are kept for the checker"
    )
    unit: str = Field(
        default="",
        description="Canonical unit, empty when none was given"
    )
    confidence: float = Field(
        ge=0.0,
        le=1.0,
        description="Detection confidence (0-1)"
    )
    original_text: str = Field(
        default="",
        alias="originalText",
        description="Text segment the service was extracted from"
    )
    category_hint: Optional[str] = Field(
        default=None,
        alias="categoryHint",
        description="Upstream category hint for the segment, if any"
    )
    attributes: Dict[str, Any] = Field(
        default_factory=dict,
        description="Special-service fields such as zone_count and boring_required"
    )

    class Config:
        populate_by_name = True


class ValidatedService(RawService):
    """RawService plus the checker's completeness verdict."""

    is_complete: bool = Field(
        default=False,
        alias="isComplete",
        description="True when quantity, unit and any special checklist are satisfied"
    )
    missing_info: List[str] = Field(
        default_factory=list,
        alias="missingInfo",
        description="Names of the missing fields"
    )
    questions: List[str] = Field(
        default_factory=list,
        description="Clarification questions specific to this service"
    )
    issue_kinds: List[str] = Field(
        default_factory=list,
        alias="issueKinds",
        description="Error codes for what blocks pricing (INVALID_QUANTITY, INCOMPLETE_SERVICE, UNMAPPABLE_SERVICE)"
    )


class MappedService(ValidatedService):
    """ValidatedService resolved against the service catalog."""

    canonical_name: Optional[str] = Field(
        default=None,
        alias="canonicalName",
        description="Catalog canonical name"
    )
    lookup_key: Optional[str] = Field(
        default=None,
        alias="lookupKey",
        description="Catalog lookup key; absent means unmapped"
    )
    category: Optional[str] = Field(
        default=None,
        description="Catalog category"
    )
    is_special: bool = Field(
        default=False,
        alias="isSpecial",
        description="Whether the catalog entry is a special service"
    )
    match_type: Optional[str] = Field(
        default=None,
        alias="matchType",
        description="exact, synonym, fuzzy or composed"
    )
    mapping_confidence: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        alias="mappingConfidence",
        description="Confidence of the catalog resolution (0-1)"
    )
    unit_compatible: bool = Field(
        default=True,
        alias="unitCompatible",
        description="Whether the requested unit matches the catalog unit"
    )


class PricedService(MappedService):
    """MappedService with cost and labor from the pricing source."""

    unit_cost: float = Field(
        default=0.0,
        alias="unitCost",
        description="Cost per unit"
    )
    total_cost: float = Field(
        default=0.0,
        alias="totalCost",
        description="unit_cost * quantity, rounded to cents"
    )
    labor_hours: float = Field(
        default=0.0,
        alias="laborHours",
        description="Labor hours for the full quantity"
    )
    pricing_source: str = Field(
        default="local_table",
        alias="pricingSource",
        description="oracle, local_table, default or mock"
    )


class CategoryHint(BaseModel):
    """A text segment with the category proposed by the upstream splitter."""

    segment: str = Field(description="Text segment describing one service")
    category: Optional[str] = Field(
        default=None,
        alias="categoryHint",
        description="Catalog category the segment should match against"
    )

    class Config:
        populate_by_name = True
