"""
Parameter placeholders in query templates.

Templates hold ParamRef nodes where concrete values go. Substitution walks
the template and builds a new structure; the template itself is never
mutated, so substituting the same values twice gives identical output.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId

from querylearn.errors import MissingParameterError
from querylearn.models import ParameterSpec, ParamRef, QueryPattern

# Whole-string legacy placeholder, e.g. "<id_value>"
LEGACY_PLACEHOLDER = re.compile(r"^<([A-Za-z_][A-Za-z0-9_]*)>$")


def substitute_parameters(query: Any, parameters: Optional[Dict[str, Any]] = None) -> Any:
    """
    Replace placeholders in a query template with concrete values.

    ParamRef nodes take the bound value, else their default. Strings that are
    exactly "<name>" take the bound value when one is given and are left as is
    otherwise. Values may be scalars, lists or sub-documents.

    Args:
        query: Filter dict or pipeline list
        parameters: Parameter name -> value

    Returns:
        New query structure with placeholders resolved

    Raises:
        MissingParameterError: A ParamRef has neither a bound value nor a default
    """
    params = parameters or {}

    def visit(node: Any) -> Any:
        if isinstance(node, ParamRef):
            if node.name in params:
                return params[node.name]
            if node.default is not None:
                return node.default
            raise MissingParameterError(node.name)
        if isinstance(node, dict):
            return {key: visit(value) for key, value in node.items()}
        if isinstance(node, list):
            return [visit(value) for value in node]
        if isinstance(node, str):
            match = LEGACY_PLACEHOLDER.match(node)
            if match and match.group(1) in params:
                return params[match.group(1)]
        return node

    return visit(query)


def find_parameters(query: Any) -> List[str]:
    """Names of all ParamRef nodes in a template, in walk order."""
    names: List[str] = []

    def visit(node: Any) -> None:
        if isinstance(node, ParamRef):
            if node.name not in names:
                names.append(node.name)
        elif isinstance(node, dict):
            for value in node.values():
                visit(value)
        elif isinstance(node, list):
            for value in node:
                visit(value)

    visit(query)
    return names


def coerce_value(value: Any, spec: Optional[ParameterSpec]) -> Any:
    """Convert a bound string back to the field's stored type where possible."""
    if spec is None or not isinstance(value, str):
        return value
    if spec.type == "objectId" and ObjectId.is_valid(value) and len(value) == 24:
        return ObjectId(value)
    if spec.type == "date":
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    return value


def resolve_parameters(pattern: QueryPattern, parameters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Bound values for a pattern, with declared defaults filled in and typed.

    Args:
        pattern: Pattern whose parameter specs apply
        parameters: Values bound by a question

    Returns:
        Parameter name -> value
    """
    resolved: Dict[str, Any] = {}
    for spec in pattern.parameters:
        if spec.default is not None:
            resolved[spec.name] = spec.default
    for name, value in (parameters or {}).items():
        resolved[name] = coerce_value(value, pattern.get_parameter(name))
    return resolved
