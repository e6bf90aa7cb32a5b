"""
Query execution, fallback and result validation.
"""

from querylearn.executor.executor import ExecutionResult, QueryExecutor, strip_lookups
from querylearn.executor.validation import analyze_results, validate_results
from querylearn.patterns.params import substitute_parameters

__all__ = [
    "ExecutionResult",
    "QueryExecutor",
    "analyze_results",
    "strip_lookups",
    "substitute_parameters",
    "validate_results",
]
