"""Unit tests for the Checker stage."""

import pytest

from config.errors import ErrorCode
from config.settings import MatchingThresholds
from models.pipeline_result import ValidationResult
from pipeline.stages.checker import (
    GENERIC_DETAIL_QUESTION,
    NO_SERVICES_QUESTION,
    Checker,
    completeness_summary,
    primary_issue_kind,
)
from tests.fixtures.mock_quote_data import make_raw_service, make_validated_service


class TestCompletenessRule:
    """Tests for validate_service."""

    def test_complete_service(self, checker):
        validated = checker.validate_service(make_raw_service("mulch", 45, "sqft"))

        assert validated.is_complete
        assert validated.missing_info == []
        assert validated.questions == []

    def test_zero_quantity(self, checker):
        validated = checker.validate_service(make_raw_service("mulch", 0, "sqft"))

        assert not validated.is_complete
        assert validated.missing_info == ["quantity"]
        assert validated.questions == ["How much Triple Ground Mulch (SQFT) do you need?"]

    def test_negative_quantity(self, checker):
        validated = checker.validate_service(make_raw_service("mulch", -5, "sqft"))

        assert validated.missing_info == ["quantity"]
        assert "can't be negative" in validated.questions[0]

    def test_missing_unit_suggests_catalog_unit(self, checker):
        validated = checker.validate_service(make_raw_service("edging", 30, ""))

        assert validated.missing_info == ["unit"]
        assert validated.questions == ["What unit should we use for Metal Edging? (e.g., linear feet)"]

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_quantity_issue_kind(self, checker, quantity):
        validated = checker.validate_service(make_raw_service("mulch", quantity, "sqft"))

        assert validated.issue_kinds == [ErrorCode.INVALID_QUANTITY]

    def test_missing_detail_issue_kind(self, checker):
        validated = checker.validate_service(make_raw_service("irrigation", 4, ""))

        assert validated.issue_kinds == [ErrorCode.INCOMPLETE_SERVICE]

    def test_unit_picks_entry_for_shared_synonym(self, checker):
        validated = checker.validate_service(make_raw_service("stone", 0, "linear_feet"))

        assert validated.questions == ["How much Stone Edgers Tumbled do you need?"]

    def test_unknown_service_keeps_its_name(self, checker):
        validated = checker.validate_service(make_raw_service("hot tubs", 3, ""))

        assert validated.questions == [
            "What unit should we use for hot tubs? (e.g., square feet, linear feet, or each)"
        ]

    def test_irrigation_checklist(self, checker):
        validated = checker.validate_service(make_raw_service("irrigation", 4, "zone"))

        assert not validated.is_complete
        assert validated.missing_info == ["zone count", "boring requirement"]
        assert len(validated.questions) == 2

    def test_irrigation_boring_answered(self, checker):
        validated = checker.validate_service(
            make_raw_service("irrigation", 4, "zone", attributes={"zone_count": 4, "boring_required": False})
        )

        assert validated.is_complete

    def test_irrigation_boring_missing(self, checker):
        validated = checker.validate_service(
            make_raw_service("irrigation", 4, "zone", attributes={"zone_count": 4})
        )

        assert validated.missing_info == ["boring requirement"]

    @pytest.mark.parametrize("name,expected", [
        ("fancy mulch blend", "square feet"),
        ("garden border", "linear feet"),
        ("fruit plant", "each"),
        ("fill gravel", "cubic yards"),
        ("hot tub", "square feet, linear feet, or each"),
    ])
    def test_suggest_unit_keywords(self, name, expected):
        assert Checker.suggest_unit(make_raw_service(name, 1, ""), None) == expected


class TestCheck:
    """Tests for the check stage output."""

    def test_all_complete(self, checker):
        step = checker.check([
            make_raw_service("triple ground mulch", 45, "sqft", 0.9),
            make_raw_service("metal edging", 3, "linear_feet", 0.95),
        ])

        result = step.data
        assert step.success
        assert step.debug.step == "check"
        assert len(result.complete_services) == 2
        assert not result.needs_clarification
        assert result.ready_for_mapping
        assert result.clarification_questions == []
        assert result.overall_confidence == pytest.approx(0.925)

    def test_no_services(self, checker):
        result = checker.check([]).data

        assert result.needs_clarification
        assert not result.ready_for_mapping
        assert result.clarification_questions == [NO_SERVICES_QUESTION]
        assert result.overall_confidence == 0.2

    def test_incomplete_service_needs_clarification(self, checker):
        result = checker.check([
            make_raw_service("mulch", 0, "sqft", 0.9),
            make_raw_service("metal edging", 3, "linear_feet", 0.95),
        ]).data

        assert result.needs_clarification
        assert not result.ready_for_mapping
        assert len(result.complete_services) == 1
        assert len(result.incomplete_services) == 1
        assert result.all_services[-1].name == "mulch"

    def test_low_confidence_needs_clarification(self, checker):
        step = checker.check([make_raw_service("mulch", 30, "sqft", 0.5)])

        result = step.data
        assert len(result.complete_services) == 1
        assert result.needs_clarification
        assert result.clarification_questions == [GENERIC_DETAIL_QUESTION]
        assert primary_issue_kind(result) == ErrorCode.INCOMPLETE_SERVICE
        assert step.debug.info

    def test_unrecognized_service_gets_suggestions(self, checker):
        step = checker.check([make_raw_service("mulsh", 100, "sqft", 0.5)])

        result = step.data
        assert result.complete_services == []
        assert result.incomplete_services[0].missing_info == ["service"]
        assert result.unrecognized_services[0].name == "mulsh"
        assert "Triple Ground Mulch (SQFT)" in result.unrecognized_services[0].suggestions
        assert result.clarification_questions[0].startswith(
            "We couldn't match \"mulsh\" to a service we offer. Did you mean: Triple Ground Mulch (SQFT)"
        )
        assert GENERIC_DETAIL_QUESTION in result.clarification_questions
        assert primary_issue_kind(result) == ErrorCode.UNMAPPABLE_SERVICE

    def test_unrecognized_without_suggestions(self, checker):
        result = checker.check([make_raw_service("hot tubs", 3, "each", 0.5)]).data

        assert result.unrecognized_services[0].suggestions == []
        assert result.clarification_questions[0] == (
            "We couldn't match \"hot tubs\" to a service we offer. Could you describe it differently?"
        )

    def test_threshold_is_tunable(self, catalog):
        lenient = Checker(catalog, MatchingThresholds(completion_threshold=0.4))

        result = lenient.check([make_raw_service("hot tubs", 3, "each", 0.5)]).data

        assert not result.needs_clarification

    def test_questions_are_bounded_and_unique(self, checker, catalog):
        services = [make_raw_service(name, 0, "", 0.9) for name in catalog.canonical_names()[:5]]
        services.append(make_raw_service(catalog.canonical_names()[0], 0, "", 0.9))

        questions = checker.check(services).data.clarification_questions

        assert len(questions) == MatchingThresholds().max_clarification_questions
        assert len(set(questions)) == len(questions)

    def test_business_rule_warnings(self, checker):
        step = checker.check([
            make_raw_service("patio", 20, "sqft", 0.9),
            make_raw_service("mulch", 20000, "sqft", 0.9),
        ])

        warnings = step.debug.warnings
        assert any("unusually small" in w for w in warnings)
        assert any("unusually large" in w for w in warnings)


class TestCompletenessSummary:
    """Tests for completeness_summary."""

    def test_no_services(self):
        assert completeness_summary(ValidationResult()) == "No services detected"

    def test_all_ready(self):
        result = ValidationResult(complete_services=[make_validated_service("mulch")])
        assert completeness_summary(result) == "All 1 service(s) ready for pricing"

    def test_partial(self):
        incomplete = make_validated_service("edging").model_copy(update={"is_complete": False})
        result = ValidationResult(
            complete_services=[make_validated_service("mulch")],
            incomplete_services=[incomplete],
            needs_clarification=True,
        )
        assert completeness_summary(result) == "1 of 2 service(s) ready, 1 need more information"
