"""
Field Validation

Clamps score/confidence fields of decoded data into their declared ranges.
Out-of-range and non-numeric values are coerced, never rejected; every
change is reported as a ValidationIssue.
"""

import math
import re
from typing import Any

from sql_analyzer.models.recovery import ValidationIssue

CONFIDENCE_RANGE = (0.0, 1.0)
DEFAULT_SCORE_RANGE = (0.0, 100.0)

# Domain-specific ranges keyed by exact (lower-cased) field name.
FIELD_RANGES: dict[str, tuple[float, float]] = {
    "score": (0.0, 100.0),
    "overall_score": (0.0, 100.0),
    "performance_score": (0.0, 100.0),
    "security_score": (0.0, 100.0),
    "standards_score": (0.0, 100.0),
    "risk_score": (0.0, 10.0),
    "severity_score": (0.0, 10.0),
}

_NUMBER_RE = re.compile(r"^\s*([-+]?\d+(?:\.\d+)?)\s*(%?)\s*$")


def clamp(value: float, low: float, high: float) -> float:
    """Clamp ``value`` into ``[low, high]``."""
    return max(low, min(high, value))


def range_for(field_name: str) -> tuple[float, float] | None:
    """Declared range for a field name, or None if it is not validated."""
    key = field_name.lower()
    if "confidence" in key:
        return CONFIDENCE_RANGE
    if "score" in key:
        return FIELD_RANGES.get(key, DEFAULT_SCORE_RANGE)
    return None


def validate_fields(data: dict[str, Any]) -> tuple[dict[str, Any], list[ValidationIssue]]:
    """
    Return a copy of ``data`` with validated fields clamped, plus the issues.

    Nested objects and arrays are walked; the input is never mutated.
    """
    issues: list[ValidationIssue] = []
    return _walk(data, "", issues), issues


def _walk(value: Any, path: str, issues: list[ValidationIssue]) -> Any:
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            child_path = f"{path}.{key}" if path else str(key)
            bounds = range_for(str(key))
            if bounds is not None and not isinstance(item, (dict, list)):
                result[key] = _coerce(item, bounds, child_path, issues)
            else:
                result[key] = _walk(item, child_path, issues)
        return result
    if isinstance(value, list):
        return [_walk(item, f"{path}[{index}]", issues) for index, item in enumerate(value)]
    return value


def _coerce(
    value: Any, bounds: tuple[float, float], path: str, issues: list[ValidationIssue]
) -> float:
    low, high = bounds
    number = _to_number(value, percent_scale=high <= 1.0)
    if number is None:
        coerced = low
    else:
        coerced = clamp(number, low, high)
        if coerced == value and not isinstance(value, str):
            return value
    issues.append(
        ValidationIssue(
            field=path,
            expected_range=bounds,
            actual_value=value,
            coerced_value=coerced,
        )
    )
    return coerced


def _to_number(value: Any, percent_scale: bool) -> float | None:
    """
    Numeric reading of ``value``, or None.

    On [0, 1] fields "85%" and a bare 85 both read as 0.85; values above 100
    are left for clamping.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        if math.isnan(value):
            return None
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER_RE.match(value)
        if not match:
            return None
        number = float(match.group(1))
        if match.group(2) and percent_scale:
            return number / 100.0
    else:
        return None
    if percent_scale and 1.0 < number <= 100.0:
        number /= 100.0
    return number
