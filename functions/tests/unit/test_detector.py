"""Unit tests for the Detector stage."""

import pytest

from models.services import CategoryHint
from pipeline.stages.detector import Detector
from tests.fixtures.mock_quote_data import (
    BARK_CHIPS_DIMENSIONS,
    IRRIGATION_ZONES,
    MULCH_AND_EDGING,
    MULCH_ONLY,
    UNKNOWN_SERVICE,
    ZERO_MULCH,
)


class TestDetectorExamples:
    """Detection on representative customer messages."""

    def test_mulch_and_edging(self, detector):
        step = detector.detect(MULCH_AND_EDGING)

        assert step.success
        assert step.debug.step == "detect"
        services = step.data.services
        assert [(s.name, s.quantity, s.unit) for s in services] == [
            ("triple ground mulch", 45, "sqft"),
            ("metal edging", 3, "linear_feet"),
        ]
        # Long synonym gets a bonus; canonical names score highest
        assert services[0].confidence == 0.9
        assert services[1].confidence == 0.95

    def test_input_analysis(self, detector):
        analysis = detector.detect(MULCH_AND_EDGING).data.input_analysis

        assert analysis.has_multiple_services
        assert analysis.has_quantities
        assert analysis.has_units
        assert analysis.overall_confidence == pytest.approx(0.925)

    def test_single_service(self, detector):
        services = detector.detect(MULCH_ONLY).data.services

        assert len(services) == 1
        assert services[0].name == "mulch"
        assert services[0].quantity == 100
        assert services[0].unit == "sqft"
        assert services[0].confidence == 0.85

    def test_dimensions_become_area(self, detector):
        services = detector.detect(BARK_CHIPS_DIMENSIONS).data.services

        assert len(services) == 1
        assert services[0].name == "bark chips"
        assert services[0].quantity == 96
        assert services[0].unit == "sqft"

    @pytest.mark.parametrize("text", ["15x10 patio", "15 x 10 patio", "15' x 10' patio"])
    def test_dimension_spellings(self, detector, text):
        service = detector.detect(text).data.services[0]
        assert service.quantity == 150
        assert service.unit == "sqft"

    def test_irrigation_zones_and_boring(self, detector):
        step = detector.detect(IRRIGATION_ZONES)

        services = step.data.services
        assert len(services) == 1
        irrigation = services[0]
        assert irrigation.name == "irrigation"
        assert irrigation.quantity == 4
        assert irrigation.unit == "zone"
        assert irrigation.attributes["zone_count"] == 4
        assert irrigation.attributes["turf_zones"] == 4
        assert irrigation.attributes["boring_required"] is False

    def test_zero_quantity_is_kept(self, detector):
        step = detector.detect(ZERO_MULCH)

        service = step.data.services[0]
        assert service.quantity == 0
        assert service.unit == "sqft"
        assert any("Non-positive quantity" in w for w in step.debug.warnings)

    def test_unknown_phrase_with_quantity(self, detector):
        services = detector.detect(UNKNOWN_SERVICE).data.services

        assert len(services) == 1
        assert services[0].name == "hot tubs"
        assert services[0].quantity == 3
        assert services[0].unit == ""
        assert services[0].confidence == 0.5

    def test_empty_input(self, detector):
        for text in ["", "   "]:
            step = detector.detect(text)
            assert step.success
            assert step.data.services == []
            assert step.debug.info == ["Input is empty"]

    def test_no_known_services(self, detector):
        step = detector.detect("hello there")

        assert step.success
        assert step.data.services == []
        assert "hello" in step.data.unmapped_text


class TestQuantityAssignment:
    """Tests for units, bare numbers and defaults."""

    def test_bare_number_takes_count_unit(self, detector):
        service = detector.detect("5 trees").data.services[0]

        assert service.name == "trees"
        assert service.quantity == 5
        assert service.unit == "each"

    def test_service_without_quantity(self, detector):
        service = detector.detect("some mulch please").data.services[0]

        assert service.quantity == 0
        assert service.unit == ""

    def test_setup_defaults_to_one(self, detector):
        service = detector.detect("sprinkler setup").data.services[0]

        assert service.quantity == 1
        assert service.unit == "setup"

    def test_thousands_separator(self, detector):
        service = detector.detect("1,200 sq ft of mulch").data.services[0]
        assert service.quantity == 1200

    def test_thousands_separator_in_hinted_segment(self, detector):
        service = detector.detect(
            "ignored",
            category_hints=[CategoryHint(segment="mulch 1,200 sqft", category="materials")],
        ).data.services[0]

        assert service.quantity == 1200
        assert service.unit == "sqft"

    @pytest.mark.parametrize("text,unit", [
        ("stone 20 feet", "linear_feet"),
        ("stone 5", "each"),
    ])
    def test_shared_synonym_takes_matching_unit(self, detector, text, unit):
        service = detector.detect(text).data.services[0]

        assert service.name == "stone"
        assert service.unit == unit

    def test_zone_unit_implies_irrigation(self, detector):
        services = detector.detect("3 zones").data.services

        assert len(services) == 1
        assert services[0].name == "Irrigation (per zone)"
        assert services[0].quantity == 3
        assert services[0].unit == "zone"


class TestSegmentation:
    """Tests for split_segments and category hints."""

    def test_split_on_separators(self, detector):
        segments = detector.split_segments("mulch, edging; sod\nseed plus rock also soil and trees")
        assert segments == ["mulch", "edging", "sod", "seed", "rock", "soil", "trees"]

    def test_separator_inside_known_phrase(self, detector):
        assert detector.split_segments("seed and straw and mulch") == ["seed and straw", "mulch"]

    def test_category_hint_disambiguates(self, detector):
        hinted = detector.detect(
            "ignored",
            category_hints=[CategoryHint(segment="30 feet of stone", category="edging")],
        ).data.services[0]
        unhinted = detector.detect("30 feet of stone").data.services[0]

        assert hinted.category_hint == "edging"
        assert hinted.confidence == 0.9
        assert hinted.unit == "linear_feet"
        assert unhinted.confidence == 0.85

    def test_unknown_category_hint_ignored(self, detector):
        step = detector.detect(
            "ignored",
            category_hints=[CategoryHint(segment="100 sq ft mulch", category="spa")],
        )

        assert step.data.services[0].category_hint is None
        assert "Unknown category hint 'spa' ignored" in step.debug.warnings


class TestIrrigationAttributes:
    """Tests for extract_irrigation_attributes."""

    def test_zone_types_and_boring(self):
        attributes = Detector.extract_irrigation_attributes(
            "3 drip zones and 2 turf zones with boring under the driveway"
        )

        assert attributes["zone_count"] == 5
        assert attributes["drip_zones"] == 3
        assert attributes["turf_zones"] == 2
        assert attributes["boring_required"] is True

    @pytest.mark.parametrize("text", [
        "no boring needed",
        "we don't need boring",
        "boring is not required",
        "without boring",
    ])
    def test_negative_boring(self, text):
        assert Detector.extract_irrigation_attributes(text)["boring_required"] is False

    def test_missing_details(self):
        attributes = Detector.extract_irrigation_attributes("irrigation please")

        assert attributes["zone_count"] is None
        assert attributes["boring_required"] is None
