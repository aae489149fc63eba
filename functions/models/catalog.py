"""Service catalog models.

Pydantic models and vocabularies for the canonical landscaping services.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class ServiceCategory(str, Enum):
    """Catalog categories. Also used as upstream category hints."""

    HARDSCAPE = "hardscape"
    DRAINAGE = "drainage"
    STRUCTURES = "structures"
    IRRIGATION = "irrigation"
    PLANTING = "planting"
    EDGING = "edging"
    MATERIALS = "materials"


class ServiceUnit(str, Enum):
    """Canonical measurement units."""

    SQFT = "sqft"
    LINEAR_FEET = "linear_feet"
    CUBIC_YARDS = "cubic_yards"
    EACH = "each"
    ZONE = "zone"
    SETUP = "setup"
    PALETTE = "palette"
    SECTION = "section"


# Units counted in whole items rather than measured
COUNT_UNITS = frozenset({
    ServiceUnit.EACH.value,
    ServiceUnit.ZONE.value,
    ServiceUnit.SETUP.value,
    ServiceUnit.PALETTE.value,
    ServiceUnit.SECTION.value,
})


class CatalogEntry(BaseModel):
    """A billable line item known to the pricing table.

    Immutable; loaded once per process by services.service_catalog.
    """

    canonical_name: str = Field(
        alias="canonicalName",
        description="Normalized name of the billable service"
    )
    lookup_key: str = Field(
        alias="lookupKey",
        description="Opaque key used to fetch price and labor from the pricing oracle"
    )
    unit: str = Field(
        description="Expected measurement unit (ServiceUnit value)"
    )
    category: str = Field(
        description="Catalog category (ServiceCategory value)"
    )
    is_special: bool = Field(
        default=False,
        alias="isSpecial",
        description="Whether the service needs auxiliary fields before it can be priced"
    )
    companion: Optional[str] = Field(
        default=None,
        description="Canonical name of a mandatory companion service"
    )
    description: str = Field(
        default="",
        description="Short human-readable description"
    )

    class Config:
        populate_by_name = True
        frozen = True

    @property
    def is_count_based(self) -> bool:
        """True when quantities for this service are whole-item counts."""
        return self.unit in COUNT_UNITS
