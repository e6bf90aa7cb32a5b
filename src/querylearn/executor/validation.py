"""
Result validation and analysis.

Both functions only inspect the first row for field checks; neither raises.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from querylearn.models import ResultShape, ValidationResult
from querylearn.profiler.schema_profiler import get_type


def validate_results(results: Optional[List[Dict[str, Any]]], shape: Optional[ResultShape] = None) -> ValidationResult:
    """
    Check query results against an expected shape.

    Args:
        results: Rows returned by the store
        shape: Expected shape; only emptiness is checked when None

    Returns:
        ValidationResult with a reason when invalid
    """
    if not results:
        return ValidationResult(valid=False, reason="No results returned")

    shape = shape or ResultShape()
    first = results[0] if isinstance(results[0], dict) else {}

    missing = [f for f in shape.required_fields if f not in first]
    if missing:
        return ValidationResult(valid=False, reason=f"Missing required fields: {', '.join(missing)}")

    type_errors = []
    for field, expected in shape.field_types.items():
        if field in first:
            actual = get_type(first[field]).value
            if actual != expected:
                type_errors.append(f"Field {field} has type {actual}, expected {expected}")
    if type_errors:
        return ValidationResult(valid=False, reason="; ".join(type_errors))

    if shape.min_count is not None and len(results) < shape.min_count:
        return ValidationResult(
            valid=False,
            reason=f"Expected at least {shape.min_count} results, got {len(results)}",
        )
    if shape.max_count is not None and len(results) > shape.max_count:
        return ValidationResult(
            valid=False,
            reason=f"Expected at most {shape.max_count} results, got {len(results)}",
        )

    return ValidationResult(valid=True)


def analyze_results(results: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    """Field/type summary of the first row."""
    if not results:
        return {"fields": {}, "count": 0}

    first = results[0]
    fields = {
        key: {"type": get_type(value).value, "example": value}
        for key, value in first.items()
    }
    return {"fields": fields, "count": len(results), "sample": first}
