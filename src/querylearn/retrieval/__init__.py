"""
Read path over published learning snapshots.
"""

from querylearn.retrieval.cache import MatchCache
from querylearn.retrieval.knowledge_base import (
    KnowledgeBase,
    PatternMatch,
    jaccard_similarity,
    tokenize,
)

__all__ = [
    "KnowledgeBase",
    "MatchCache",
    "PatternMatch",
    "jaccard_similarity",
    "tokenize",
]
