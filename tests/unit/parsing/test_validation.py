"""
Unit tests for score/confidence field validation.
"""

import math

import pytest

from sql_analyzer.parsing.validation import (
    CONFIDENCE_RANGE,
    DEFAULT_SCORE_RANGE,
    clamp,
    range_for,
    validate_fields,
)


class TestRanges:
    """Field names map to declared ranges."""

    @pytest.mark.parametrize(
        "field_name,expected",
        [
            ("confidence", CONFIDENCE_RANGE),
            ("Overall_Confidence", CONFIDENCE_RANGE),
            ("score", (0.0, 100.0)),
            ("risk_score", (0.0, 10.0)),
            ("readability_score", DEFAULT_SCORE_RANGE),
            ("summary", None),
            ("severity", None),
        ],
    )
    def test_range_for(self, field_name, expected):
        assert range_for(field_name) == expected

    def test_clamp(self):
        assert clamp(5, 0, 1) == 1
        assert clamp(-5, 0, 1) == 0
        assert clamp(0.5, 0, 1) == 0.5


class TestValidateFields:
    """Coercion is lenient and every change is reported."""

    def test_in_range_values_untouched(self):
        data = {"score": 80, "confidence": 0.7, "summary": "ok"}

        validated, issues = validate_fields(data)

        assert validated == data
        assert isinstance(validated["score"], int)
        assert issues == []

    def test_out_of_range_clamped(self):
        validated, issues = validate_fields({"score": -3, "confidence": 140})

        assert validated == {"score": 0.0, "confidence": 1.0}
        assert [(issue.field, issue.coerced_value) for issue in issues] == [
            ("score", 0.0),
            ("confidence", 1.0),
        ]

    def test_percent_string_confidence(self):
        validated, issues = validate_fields({"confidence": "85%"})

        assert validated["confidence"] == pytest.approx(0.85)
        assert issues[0].actual_value == "85%"

    @pytest.mark.parametrize("value", [85, 85.0, "85"])
    def test_whole_percent_confidence(self, value):
        validated, issues = validate_fields({"confidence": value})

        assert validated["confidence"] == pytest.approx(0.85)
        assert issues[0].actual_value == value
        assert issues[0].coerced_value == pytest.approx(0.85)

    def test_whole_percent_not_applied_to_scores(self):
        validated, issues = validate_fields({"score": 85})

        assert validated["score"] == 85
        assert issues == []

    def test_percent_string_score_not_scaled(self):
        validated, _ = validate_fields({"score": "85%"})

        assert validated["score"] == 85.0

    def test_numeric_string_reported(self):
        validated, issues = validate_fields({"confidence": "0.7"})

        assert validated["confidence"] == 0.7
        assert len(issues) == 1

    @pytest.mark.parametrize("value", ["high", None, True, math.nan])
    def test_non_numeric_goes_to_minimum(self, value):
        validated, issues = validate_fields({"confidence": value})

        assert validated["confidence"] == 0.0
        assert issues[0].coerced_value == 0.0
        assert issues[0].expected_range == CONFIDENCE_RANGE

    def test_nested_paths(self):
        data = {
            "metrics": {"score": 120},
            "issues": [{"confidence": 250}, {"description": "fine"}],
        }

        validated, issues = validate_fields(data)

        assert validated["metrics"]["score"] == 100.0
        assert validated["issues"][0]["confidence"] == 1.0
        assert [issue.field for issue in issues] == ["metrics.score", "issues[0].confidence"]

    def test_input_not_mutated(self):
        data = {"score": 500, "metrics": {"confidence": 9}}

        validate_fields(data)

        assert data == {"score": 500, "metrics": {"confidence": 9}}

    def test_named_domain_range(self):
        validated, issues = validate_fields({"risk_score": 42})

        assert validated["risk_score"] == 10.0
        assert issues[0].expected_range == (0.0, 10.0)
