"""
Schema profiling for document collections.
"""

from querylearn.profiler.schema_profiler import SchemaProfiler, extract_fields, get_type

__all__ = [
    "SchemaProfiler",
    "extract_fields",
    "get_type",
]
