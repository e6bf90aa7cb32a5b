"""
Query pattern catalog generation and parameter handling.
"""

from querylearn.patterns.domain import generate_domain_patterns
from querylearn.patterns.generator import (
    QueryPatternGenerator,
    bounded_lookup,
    plain_lookup,
    singular,
)
from querylearn.patterns.params import (
    find_parameters,
    resolve_parameters,
    substitute_parameters,
)

__all__ = [
    "QueryPatternGenerator",
    "bounded_lookup",
    "find_parameters",
    "generate_domain_patterns",
    "plain_lookup",
    "resolve_parameters",
    "singular",
    "substitute_parameters",
]
