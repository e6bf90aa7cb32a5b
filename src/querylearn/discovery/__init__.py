"""
Relationship discovery between profiled collections.

Usage:
    from querylearn.discovery import RelationshipDiscoverer

    discoverer = RelationshipDiscoverer(store, known_relationships=[...])
    direct, multi_level = discoverer.discover(profiles)
"""

from querylearn.discovery.relationship_discoverer import (
    RelationshipDiscoverer,
    Verification,
    chain_relationships,
    get_collection_variants,
    get_nested_value,
)

__all__ = [
    "RelationshipDiscoverer",
    "Verification",
    "chain_relationships",
    "get_collection_variants",
    "get_nested_value",
]
