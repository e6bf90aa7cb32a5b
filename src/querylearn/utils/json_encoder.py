"""JSON encoding for store documents and learning artifacts"""
from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from bson import Decimal128, ObjectId

from querylearn.models import ParamRef


class CustomJSONEncoder(json.JSONEncoder):
    """
    JSON encoder that handles:
    - ObjectId values (as their hex string)
    - Decimal and Decimal128 values
    - datetime/date objects
    - str enums and parameter placeholders
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, ObjectId):
            return str(obj)
        elif isinstance(obj, Decimal128):
            return float(obj.to_decimal())
        elif isinstance(obj, Decimal):
            return float(obj)
        elif isinstance(obj, (datetime, date)):
            return obj.isoformat()
        elif isinstance(obj, Enum):
            return obj.value
        elif isinstance(obj, ParamRef):
            return obj.to_dict()
        elif isinstance(obj, (bytes, bytearray)):
            return obj.hex()
        elif isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)
        return super().default(obj)


def json_dumps(obj: Any, **kwargs) -> str:
    """
    JSON dumps with the custom encoder.

    Args:
        obj: Object to serialize
        **kwargs: Additional arguments to pass to json.dumps

    Returns:
        JSON string
    """
    return json.dumps(obj, cls=CustomJSONEncoder, **kwargs)


def to_jsonable(obj: Any) -> Any:
    """Round-trip through the encoder so nested store values become plain JSON types."""
    return json.loads(json_dumps(obj))
