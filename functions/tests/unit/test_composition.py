"""Unit tests for line-item consolidation and companion rules."""

from pipeline.composition import COMPOSED_MATCH_TYPE, consolidate_services, ensure_companions
from tests.fixtures.mock_quote_data import get_irrigation_zone_service, make_mapped_service


class TestConsolidateServices:
    """Tests for consolidate_services."""

    def test_merges_same_lookup_key(self):
        first = make_mapped_service("Triple Ground Mulch (SQFT)", "R23", 45, "sqft", "materials", mapping_confidence=0.95)
        second = make_mapped_service("Triple Ground Mulch (SQFT)", "R23", 55, "sqft", "materials", mapping_confidence=0.85)

        merged, warnings = consolidate_services([first, second])

        assert len(merged) == 1
        assert merged[0].quantity == 100
        assert merged[0].mapping_confidence == 0.85
        assert "; " in merged[0].original_text
        assert warnings == ["Merged duplicate 'Triple Ground Mulch (SQFT)' lines"]

    def test_keeps_first_seen_order(self):
        services = [
            make_mapped_service("Metal Edging", "R21", 10, "linear_feet", "edging"),
            make_mapped_service("Triple Ground Mulch (SQFT)", "R23", 45, "sqft", "materials"),
            make_mapped_service("Metal Edging", "R21", 5, "linear_feet", "edging"),
        ]

        merged, _ = consolidate_services(services)

        assert [s.lookup_key for s in merged] == ["R21", "R23"]
        assert merged[0].quantity == 15

    def test_warns_on_unit_conflict(self):
        services = [
            make_mapped_service("Metal Edging", "R21", 10, "linear_feet", "edging"),
            make_mapped_service("Metal Edging", "R21", 5, "sqft", "edging"),
        ]

        _, warnings = consolidate_services(services)

        assert "different units" in warnings[0]

    def test_idempotent(self):
        services = [
            make_mapped_service("Metal Edging", "R21", 10, "linear_feet", "edging"),
            make_mapped_service("Metal Edging", "R21", 5, "linear_feet", "edging"),
        ]

        once, _ = consolidate_services(services)
        twice, warnings = consolidate_services(once)

        assert [s.model_dump() for s in twice] == [s.model_dump() for s in once]
        assert warnings == []


class TestEnsureCompanions:
    """Tests for ensure_companions."""

    def test_prepends_irrigation_setup(self, catalog):
        services, warnings = ensure_companions([get_irrigation_zone_service()], catalog)

        assert [s.canonical_name for s in services] == ["Irrigation Set Up Cost", "Irrigation (per zone)"]
        setup = services[0]
        assert setup.quantity == 1
        assert setup.unit == "setup"
        assert setup.lookup_key == "R15"
        assert setup.match_type == COMPOSED_MATCH_TYPE
        assert setup.mapping_confidence == 0.9
        assert setup.attributes["boring_required"] is False
        assert len(warnings) == 1

    def test_existing_companion_not_duplicated(self, catalog):
        setup = make_mapped_service("Irrigation Set Up Cost", "R15", 1, "setup", "irrigation", is_special=True)

        services, warnings = ensure_companions([setup, get_irrigation_zone_service()], catalog)

        assert len(services) == 2
        assert warnings == []

    def test_idempotent(self, catalog):
        once, _ = ensure_companions([get_irrigation_zone_service()], catalog)
        twice, _ = ensure_companions(once, catalog)

        assert len(twice) == len(once) == 2

    def test_services_without_companion_untouched(self, catalog):
        mulch = make_mapped_service("Triple Ground Mulch (SQFT)", "R23", 45, "sqft", "materials")

        services, warnings = ensure_companions([mulch], catalog)

        assert services == [mulch]
        assert warnings == []
