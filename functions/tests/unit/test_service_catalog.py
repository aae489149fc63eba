"""Unit tests for the service catalog and unit vocabulary."""

import pytest

from models.catalog import CatalogEntry
from services.service_catalog import (
    CATALOG_ROWS,
    ServiceCatalog,
    build_catalog_entries,
    canonical_unit,
    get_default_catalog,
    normalize_unit,
    unit_display_name,
    units_compatible,
)


class TestCatalogData:
    """Tests for the static catalog table."""

    def test_catalog_has_all_rows(self, catalog):
        assert len(catalog) == len(CATALOG_ROWS) == 32

    def test_lookup_keys_are_unique(self):
        keys = [row[1] for row in CATALOG_ROWS]
        assert len(keys) == len(set(keys))
        assert keys[0] == "R2"
        assert keys[-1] == "R33"

    def test_every_entry_has_synonyms(self, catalog):
        for name in catalog.canonical_names():
            assert catalog.synonyms_for(name), name

    def test_irrigation_zone_has_setup_companion(self, catalog):
        zone = catalog.get("Irrigation (per zone)")
        setup = catalog.companion_for(zone)

        assert zone.is_special
        assert zone.unit == "zone"
        assert setup.canonical_name == "Irrigation Set Up Cost"
        assert setup.lookup_key == "R15"
        assert setup.unit == "setup"

    def test_default_catalog_is_shared(self):
        assert get_default_catalog() is get_default_catalog()

    def test_entries_are_immutable(self, catalog):
        entry = catalog.get("Metal Edging")
        with pytest.raises(Exception):
            entry.unit = "sqft"


class TestCatalogLookup:
    """Tests for name, key and synonym lookup."""

    def test_get_is_case_insensitive(self, catalog):
        assert catalog.get("metal edging").lookup_key == "R21"
        assert catalog.get("  METAL EDGING ").lookup_key == "R21"
        assert catalog.get("") is None
        assert "Metal Edging" in catalog

    def test_get_by_lookup_key(self, catalog):
        assert catalog.get_by_lookup_key("R23").canonical_name == "Triple Ground Mulch (SQFT)"
        assert catalog.is_valid_lookup_key("R23")
        assert not catalog.is_valid_lookup_key("R99")
        assert not catalog.is_valid_lookup_key(None)

    def test_find_by_synonym(self, catalog):
        assert catalog.find_by_synonym("bark chips").canonical_name == "Triple Ground Mulch (SQFT)"
        assert catalog.find_by_synonym("hot tub") is None

    def test_shared_synonym_prefers_category_hint(self, catalog):
        # "stone" belongs to both the steppers and the stone edgers
        assert catalog.find_by_synonym("stone").category == "hardscape"
        assert catalog.find_by_synonym("stone", "edging").canonical_name == "Stone Edgers Tumbled"

    def test_shared_synonym_prefers_compatible_unit(self, catalog):
        assert catalog.find_by_synonym("stone", unit="linear_feet").canonical_name == "Stone Edgers Tumbled"
        assert catalog.find_by_synonym("stone", unit="each").canonical_name == "Flag stone steppers"
        # Unit outranks a category hint the unit cannot satisfy
        assert catalog.resolve("stone", "hardscape", "linear_feet").canonical_name == "Stone Edgers Tumbled"
        assert catalog.resolve("stone", unit="sqft").canonical_name == "Flag stone steppers"

    def test_suggest_misspelling(self, catalog):
        suggestions = catalog.suggest("mulsh")

        assert suggestions[0] == "Triple Ground Mulch (SQFT)"
        assert catalog.suggest("edgeing")[0] in {"Metal Edging", "Stone Edgers Tumbled", "Spade Edging"}
        assert catalog.suggest("hot tubs") == []

    def test_resolve_prefers_canonical_name(self, catalog):
        assert catalog.resolve("Sod Removal").canonical_name == "sod removal"
        assert catalog.resolve("remove sod").canonical_name == "sod removal"

    def test_by_category(self, catalog):
        names = [entry.canonical_name for entry in catalog.by_category("edging")]
        assert names == ["Stone Edgers Tumbled", "Metal Edging", "Spade Edging"]

    def test_suggest(self, catalog):
        suggestions = catalog.suggest("mulch")
        assert "Triple Ground Mulch (SQFT)" in suggestions
        assert catalog.suggest("") == []
        assert len(catalog.suggest("e", limit=3)) <= 3


class TestCatalogConstruction:
    """Tests for catalog validation."""

    def test_duplicate_lookup_key_rejected(self):
        entries = build_catalog_entries()
        duplicate = CatalogEntry(canonical_name="Copy", lookup_key="R2", unit="sqft", category="hardscape")
        with pytest.raises(ValueError, match="Duplicate lookup key"):
            ServiceCatalog(entries + [duplicate], {})

    def test_unknown_synonym_target_rejected(self):
        with pytest.raises(ValueError, match="unknown service"):
            ServiceCatalog(build_catalog_entries(), {"Hot Tub": ["spa"]})

    def test_missing_synonyms_rejected(self):
        entries = [CatalogEntry(canonical_name="Metal Edging", lookup_key="R21", unit="linear_feet", category="edging")]
        with pytest.raises(ValueError, match="without synonyms"):
            ServiceCatalog(entries, {})


class TestUnits:
    """Tests for unit normalization and compatibility."""

    @pytest.mark.parametrize("phrase,expected", [
        ("sq ft", "sqft"),
        ("Square Feet", "sqft"),
        ("feet", "linear_feet"),
        ("ft", "linear_feet"),
        ("yards", "cubic_yards"),
        ("zones", "zone"),
        ("pallets", "palette"),
        ("furlongs", ""),
    ])
    def test_canonical_unit(self, phrase, expected):
        assert canonical_unit(phrase) == expected

    def test_normalize_unit(self):
        assert normalize_unit(" Linear Feet ") == "linear_feet"
        assert normalize_unit("") == ""

    def test_units_compatible(self):
        assert units_compatible("sqft", "sqft")
        assert units_compatible("square_feet", "sqft")
        assert units_compatible("feet", "linear_feet")
        assert not units_compatible("sqft", "linear_feet")
        assert not units_compatible("each", "zone")

    def test_unit_display_name(self):
        assert unit_display_name("sqft") == "square feet"
        assert unit_display_name("linear_feet") == "linear feet"
        assert unit_display_name("acre_feet") == "acre feet"
