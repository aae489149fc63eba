"""Service Catalog for the quote pipeline.

Static table of the canonical landscaping services the pricing table knows
about, plus the synonym index and unit vocabulary used by the detector,
checker and mapper. The catalog is built once per process and is read-only
afterwards, so it can be shared by any number of concurrent requests.

Lookup keys are the row references of the pricing sheet ("R2".."R33").
"""

import re
from typing import Dict, List, Optional, Tuple

import structlog

from models.catalog import CatalogEntry, ServiceCategory, ServiceUnit
from utils.similarity import similarity

logger = structlog.get_logger(__name__)


# =============================================================================
# Catalog Data
# =============================================================================

# (canonical name, lookup key, unit, category, is_special, companion)
CATALOG_ROWS: List[Tuple[str, str, str, str, bool, Optional[str]]] = [
    # Hardscape
    ("Paver Patio (SQFT)", "R2", "sqft", "hardscape", False, None),
    ("3' Retaining wall (LNFT X SQFT)", "R3", "linear_feet", "hardscape", False, None),
    ("5' Retaining Wall (LNFTXSQFT)", "R4", "linear_feet", "hardscape", False, None),
    ("2' Garden Walls (LNFTXSQFT)", "R5", "linear_feet", "hardscape", False, None),
    ("Flag stone steppers", "R6", "each", "hardscape", False, None),
    # Drainage
    ("Dry Creek with plants (sqft)", "R7", "sqft", "drainage", False, None),
    ("Buried Downspout (EACH)", "R8", "each", "drainage", False, None),
    ("Drainage Burying (LNFT)", "R9", "linear_feet", "drainage", False, None),
    ("EZ Flow French Drain (10' section)", "R10", "section", "drainage", False, None),
    ("Flow Well Drainage- 4X4 (EACH)", "R11", "each", "drainage", False, None),
    # Structures
    ("Outdoor Kitchen (LNFT)", "R12", "linear_feet", "structures", False, None),
    ("Intellishade Pergola (SQFT)", "R13", "sqft", "structures", False, None),
    ("Cedar Pergola (SQFT)", "R14", "sqft", "structures", False, None),
    # Irrigation (special)
    ("Irrigation Set Up Cost", "R15", "setup", "irrigation", True, None),
    ("Irrigation (per zone)", "R16", "zone", "irrigation", True, "Irrigation Set Up Cost"),
    # Planting
    ("Sod Install (1 pallatte-450sqft)", "R17", "palette", "planting", False, None),
    ("Seed/Straw (SQFT)", "R18", "sqft", "planting", False, None),
    ("sod removal", "R19", "sqft", "planting", False, None),
    # Edging
    ("Stone Edgers Tumbled", "R20", "linear_feet", "edging", False, None),
    ("Metal Edging", "R21", "linear_feet", "edging", False, None),
    ("Spade Edging", "R22", "linear_feet", "edging", False, None),
    # Materials
    ("Triple Ground Mulch (SQFT)", "R23", "sqft", "materials", False, None),
    ("Iowa Rainbow Rock Bed (sqft)", "R24", "sqft", "materials", False, None),
    ("Topsoil (CUYD)", "R25", "cubic_yards", "materials", False, None),
    # Plants and trees
    ("Annuals 4\" (1 per sq ft)", "R26", "sqft", "planting", False, None),
    ("Annuals 10\"", "R27", "each", "planting", False, None),
    ("Perennial (1 gal)", "R28", "each", "planting", False, None),
    ("Medium Shrub (2-3 gal)", "R29", "each", "planting", False, None),
    ("Large Shrub (5-10 gal)", "R30", "each", "planting", False, None),
    ("Small Tree (<2in Caliper)", "R31", "each", "planting", False, None),
    ("Medium Tree (2.25-4in Caliper)", "R32", "each", "planting", False, None),
    ("Large Tree (4.25-8in Caliper)", "R33", "each", "planting", False, None),
]

# Customer vocabulary per canonical name. A synonym may belong to more than
# one entry; category hints decide between them.
SERVICE_SYNONYMS: Dict[str, List[str]] = {
    "Paver Patio (SQFT)": [
        "patio", "paver", "pavers", "paver patio", "brick patio", "stone patio",
    ],
    "3' Retaining wall (LNFT X SQFT)": [
        "3 foot retaining wall", "3ft retaining wall", "3' retaining wall",
        "short retaining wall", "garden wall",
    ],
    "5' Retaining Wall (LNFTXSQFT)": [
        "retaining wall", "5 foot retaining wall", "5ft retaining wall",
        "5' retaining wall", "tall retaining wall", "wall",
    ],
    "2' Garden Walls (LNFTXSQFT)": [
        "2 foot garden wall", "2ft garden wall", "seat wall", "low wall", "wall",
    ],
    "Flag stone steppers": [
        "flagstone", "flag stone", "steppers", "stepping stones", "flagstone steppers", "stone",
    ],
    "Dry Creek with plants (sqft)": [
        "dry creek", "creek bed", "dry creek bed", "river rock creek",
    ],
    "Buried Downspout (EACH)": [
        "downspout", "downspouts", "buried downspout", "gutter drain",
    ],
    "Drainage Burying (LNFT)": [
        "drainage", "drain line", "buried drainage", "drain pipe", "drainage burying",
    ],
    "EZ Flow French Drain (10' section)": [
        "french drain", "ez flow", "ez flow drain", "french drain section",
    ],
    "Flow Well Drainage- 4X4 (EACH)": [
        "flow well", "dry well", "drainage well",
    ],
    "Outdoor Kitchen (LNFT)": [
        "outdoor kitchen", "kitchen", "grill station", "outdoor bar",
    ],
    "Intellishade Pergola (SQFT)": [
        "intellishade", "intellishade pergola", "louvered pergola", "pergola",
    ],
    "Cedar Pergola (SQFT)": [
        "cedar pergola", "wood pergola", "wooden pergola", "pergola",
    ],
    "Irrigation Set Up Cost": [
        "irrigation setup", "sprinkler setup", "irrigation installation",
        "irrigation system setup", "sprinkler system",
    ],
    "Irrigation (per zone)": [
        "irrigation", "sprinklers", "sprinkler", "watering system",
        "irrigation zones", "sprinkler zones", "drip irrigation",
    ],
    "Sod Install (1 pallatte-450sqft)": [
        "sod", "sod install", "sod installation", "new sod", "sod pallets",
    ],
    "Seed/Straw (SQFT)": [
        "seed", "seeding", "grass seed", "seed and straw", "straw",
    ],
    "sod removal": [
        "sod removal", "remove sod", "grass removal", "grass excavation", "lawn removal",
    ],
    "Stone Edgers Tumbled": [
        "stone edging", "rock edging", "stone border", "tumbled stone edging",
        "stone edgers", "stone",
    ],
    "Metal Edging": [
        "edging", "metal edging", "metal edge", "steel edging", "aluminum edging", "landscape edging",
    ],
    "Spade Edging": [
        "spade edging", "spade edge", "cut edging", "hand edging", "natural edging",
    ],
    "Triple Ground Mulch (SQFT)": [
        "mulch", "triple ground", "triple ground mulch", "wood chips", "mulching",
        "bark mulch", "wood mulch", "bark chips", "hardwood mulch",
    ],
    "Iowa Rainbow Rock Bed (sqft)": [
        "rainbow rock", "decorative rock", "landscape rock", "colored gravel", "rock bed", "rock",
    ],
    "Topsoil (CUYD)": [
        "topsoil", "top soil", "soil", "dirt", "garden soil", "planting soil",
    ],
    "Annuals 4\" (1 per sq ft)": [
        "annuals", "annual flowers", "4 inch annuals", "bedding plants", "flowers",
    ],
    "Annuals 10\"": [
        "10 inch annuals", "large annuals", "annual pots", "potted annuals",
    ],
    "Perennial (1 gal)": [
        "perennial", "perennials", "1 gallon perennials", "plants",
    ],
    "Medium Shrub (2-3 gal)": [
        "shrub", "shrubs", "medium shrub", "medium shrubs", "bush", "bushes",
    ],
    "Large Shrub (5-10 gal)": [
        "large shrub", "large shrubs", "big shrub", "big shrubs", "large bushes",
    ],
    "Small Tree (<2in Caliper)": [
        "small tree", "small trees", "ornamental tree", "young tree", "sapling",
    ],
    "Medium Tree (2.25-4in Caliper)": [
        "tree", "trees", "medium tree", "medium trees", "shade tree",
    ],
    "Large Tree (4.25-8in Caliper)": [
        "large tree", "large trees", "big tree", "big trees", "mature tree",
    ],
}


# =============================================================================
# Unit Vocabulary
# =============================================================================

# Surface phrases (lowercase) to canonical units
UNIT_ALIASES: Dict[str, str] = {
    "sq ft": "sqft", "sqft": "sqft", "sq. ft": "sqft", "sq feet": "sqft",
    "square feet": "sqft", "square foot": "sqft", "square ft": "sqft", "sf": "sqft",
    "linear feet": "linear_feet", "linear foot": "linear_feet", "linear ft": "linear_feet",
    "lin ft": "linear_feet", "lnft": "linear_feet", "lf": "linear_feet",
    "ft": "linear_feet", "feet": "linear_feet", "foot": "linear_feet",
    "cubic yards": "cubic_yards", "cubic yard": "cubic_yards", "cu yd": "cubic_yards",
    "cuyd": "cubic_yards", "yards": "cubic_yards", "yard": "cubic_yards", "yds": "cubic_yards",
    "each": "each", "ea": "each", "pieces": "each", "piece": "each", "units": "each",
    "spouts": "each", "spout": "each",
    "zones": "zone", "zone": "zone",
    "setup": "setup", "installation": "setup",
    "pallets": "palette", "pallet": "palette", "palettes": "palette", "palette": "palette",
    "sections": "section", "section": "section",
}

# Canonical unit to the normalized spellings it accepts
UNIT_COMPATIBILITY: Dict[str, List[str]] = {
    "sqft": ["sqft", "square_feet", "sq_ft", "square_foot"],
    "linear_feet": ["linear_feet", "feet", "ft", "lin_ft", "linear_foot"],
    "cubic_yards": ["cubic_yards", "yards", "yard", "cu_yd"],
    "each": ["each", "pieces", "units"],
    "zone": ["zone", "zones", "spouts"],
    "setup": ["setup", "installation"],
    "palette": ["palette", "palettes", "pallet", "pallets"],
    "section": ["section", "sections"],
}

UNIT_DISPLAY_NAMES: Dict[str, str] = {
    "sqft": "square feet",
    "linear_feet": "linear feet",
    "cubic_yards": "cubic yards",
    "each": "each",
    "zone": "zones",
    "setup": "setup",
    "palette": "pallets",
    "section": "10' sections",
}

# Minimum similarity for a misspelled phrase to be offered as a suggestion
SUGGESTION_SIMILARITY = 0.6


def normalize_unit(unit: str) -> str:
    """Normalize a unit spelling: lowercase, whitespace to underscore, letters only."""
    lowered = re.sub(r"\s+", "_", (unit or "").strip().lower())
    return re.sub(r"[^a-z_]", "", lowered)


def canonical_unit(unit: str) -> str:
    """Map a surface unit phrase to its canonical unit, or '' if unknown."""
    phrase = re.sub(r"\s+", " ", (unit or "").strip().lower()).rstrip(".")
    if phrase in UNIT_ALIASES:
        return UNIT_ALIASES[phrase]
    normalized = normalize_unit(phrase)
    for canonical, accepted in UNIT_COMPATIBILITY.items():
        if normalized in accepted:
            return canonical
    return ""


def units_compatible(service_unit: str, expected_unit: str) -> bool:
    """Check whether a service's unit satisfies a catalog entry's unit."""
    normalized = normalize_unit(service_unit)
    expected = normalize_unit(expected_unit)
    if normalized == expected:
        return True
    return normalized in UNIT_COMPATIBILITY.get(expected, [])


def unit_display_name(unit: str) -> str:
    """Human-readable unit name for questions and summaries."""
    return UNIT_DISPLAY_NAMES.get(unit, unit.replace("_", " "))


# =============================================================================
# Catalog
# =============================================================================


class ServiceCatalog:
    """Read-only catalog of canonical services with a synonym index."""

    def __init__(
        self,
        entries: List[CatalogEntry],
        synonyms: Dict[str, List[str]]
    ):
        """Build the catalog indexes.

        Args:
            entries: Catalog entries; lookup keys must be unique.
            synonyms: Canonical name to customer phrases.

        Raises:
            ValueError: If lookup keys collide, a synonym references an unknown
                entry, or an entry has no synonym.
        """
        self._entries: Dict[str, CatalogEntry] = {}
        self._by_name: Dict[str, CatalogEntry] = {}
        self._by_key: Dict[str, CatalogEntry] = {}
        self._synonym_index: Dict[str, List[str]] = {}

        for entry in entries:
            if entry.lookup_key in self._by_key:
                raise ValueError(f"Duplicate lookup key: {entry.lookup_key}")
            self._entries[entry.canonical_name] = entry
            self._by_name[entry.canonical_name.lower()] = entry
            self._by_key[entry.lookup_key] = entry

        for canonical_name, phrases in synonyms.items():
            if canonical_name not in self._entries:
                raise ValueError(f"Synonyms reference unknown service: {canonical_name}")
            for phrase in phrases:
                key = phrase.strip().lower()
                names = self._synonym_index.setdefault(key, [])
                if canonical_name not in names:
                    names.append(canonical_name)

        missing = [name for name in self._entries if name not in synonyms or not synonyms[name]]
        if missing:
            raise ValueError(f"Services without synonyms: {missing}")

        for entry in entries:
            if entry.companion and entry.companion not in self._entries:
                raise ValueError(f"Unknown companion {entry.companion!r} for {entry.canonical_name}")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, canonical_name: str) -> bool:
        return self.get(canonical_name) is not None

    def entries(self) -> List[CatalogEntry]:
        """All entries in catalog order."""
        return list(self._entries.values())

    def canonical_names(self) -> List[str]:
        return list(self._entries.keys())

    def synonyms(self) -> List[str]:
        """All known synonym phrases (lowercase)."""
        return list(self._synonym_index.keys())

    def synonyms_for(self, canonical_name: str) -> List[str]:
        return [
            phrase for phrase, names in self._synonym_index.items()
            if canonical_name in names
        ]

    def get(self, canonical_name: str) -> Optional[CatalogEntry]:
        """Case-insensitive lookup by canonical name."""
        if not canonical_name:
            return None
        return self._by_name.get(canonical_name.strip().lower())

    def get_by_lookup_key(self, lookup_key: str) -> Optional[CatalogEntry]:
        return self._by_key.get(lookup_key)

    def is_valid_lookup_key(self, lookup_key: Optional[str]) -> bool:
        return lookup_key is not None and lookup_key in self._by_key

    def by_category(self, category: str) -> List[CatalogEntry]:
        return [entry for entry in self._entries.values() if entry.category == category]

    def entries_for_synonym(self, synonym: str) -> List[CatalogEntry]:
        """All entries sharing an exact synonym phrase, in catalog order."""
        names = self._synonym_index.get((synonym or "").strip().lower(), [])
        return [self._entries[name] for name in names]

    def find_by_synonym(
        self,
        text: str,
        category_hint: Optional[str] = None,
        unit: Optional[str] = None
    ) -> Optional[CatalogEntry]:
        """Resolve an exact synonym phrase, preferring the hinted category and a compatible unit."""
        candidates = self.entries_for_synonym(text)
        if not candidates:
            return None
        return prefer_category(candidates, category_hint, unit)

    def resolve(
        self,
        name: str,
        category_hint: Optional[str] = None,
        unit: Optional[str] = None
    ) -> Optional[CatalogEntry]:
        """Exact canonical name first, then exact synonym."""
        return self.get(name) or self.find_by_synonym(name, category_hint, unit)

    def companion_for(self, entry: CatalogEntry) -> Optional[CatalogEntry]:
        """Mandatory companion entry (e.g., irrigation setup for zones)."""
        if not entry.companion:
            return None
        return self._entries.get(entry.companion)

    def suggest(self, text: str, limit: int = 5) -> List[str]:
        """Canonical names for a phrase that does not resolve.

        Synonyms that contain, or are contained in, the text come first.
        Remaining slots go to the closest misspellings, best score first.
        """
        query = (text or "").strip().lower()
        if not query:
            return []

        suggestions: List[str] = []
        for phrase, names in self._synonym_index.items():
            if query in phrase or phrase in query:
                for name in names:
                    if name not in suggestions:
                        suggestions.append(name)
            if len(suggestions) >= limit:
                return suggestions[:limit]

        scored = sorted(
            (
                (similarity(query, phrase), phrase)
                for phrase in self._synonym_index
            ),
            key=lambda item: item[0],
            reverse=True,
        )
        for score, phrase in scored:
            if score < SUGGESTION_SIMILARITY:
                break
            for name in self._synonym_index[phrase]:
                if name not in suggestions:
                    suggestions.append(name)
        return suggestions[:limit]


def prefer_category(
    candidates: List[CatalogEntry],
    category_hint: Optional[str],
    unit: Optional[str] = None
) -> CatalogEntry:
    """Pick among entries sharing a synonym.

    Order: hinted category with a compatible unit, any compatible unit,
    hinted category, then catalog order.
    """
    compatible = [
        entry for entry in candidates
        if unit and units_compatible(unit, entry.unit)
    ]
    if category_hint:
        for entry in compatible:
            if entry.category == category_hint:
                return entry
    if compatible:
        return compatible[0]
    if category_hint:
        for entry in candidates:
            if entry.category == category_hint:
                return entry
    return candidates[0]


def build_catalog_entries() -> List[CatalogEntry]:
    return [
        CatalogEntry(
            canonical_name=name,
            lookup_key=key,
            unit=unit,
            category=category,
            is_special=special,
            companion=companion,
        )
        for name, key, unit, category, special, companion in CATALOG_ROWS
    ]


_default_catalog: Optional[ServiceCatalog] = None


def get_default_catalog() -> ServiceCatalog:
    """Get the process-lifetime catalog (built on first use)."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = ServiceCatalog(build_catalog_entries(), SERVICE_SYNONYMS)
        logger.info(
            "service_catalog_loaded",
            services=len(_default_catalog),
            synonyms=len(_default_catalog.synonyms()),
        )
    return _default_catalog


# Re-exported for callers building hints and questions
__all__ = [
    "ServiceCatalog",
    "ServiceCategory",
    "ServiceUnit",
    "CATALOG_ROWS",
    "SERVICE_SYNONYMS",
    "UNIT_ALIASES",
    "UNIT_COMPATIBILITY",
    "normalize_unit",
    "canonical_unit",
    "units_compatible",
    "unit_display_name",
    "prefer_category",
    "build_catalog_entries",
    "get_default_catalog",
]
