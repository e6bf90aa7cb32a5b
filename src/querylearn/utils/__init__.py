"""
Shared helpers.
"""

from querylearn.utils.json_encoder import CustomJSONEncoder, json_dumps, to_jsonable

__all__ = ["CustomJSONEncoder", "json_dumps", "to_jsonable"]
