"""
Knowledge base over a published learning snapshot.

Loads the artifacts once (and optionally on a refresh interval), answers
direct lookups by collection, and matches free-text queries to the closest
generated question by word-overlap similarity.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from querylearn.artifacts import ArtifactStore
from querylearn.errors import PersistenceError
from querylearn.models import (
    AnyRelationship,
    Category,
    CollectionProfile,
    LearningSnapshot,
    Question,
    QueryPattern,
    Relationship,
    RunSummary,
)
from querylearn.patterns.params import resolve_parameters, substitute_parameters
from querylearn.retrieval.cache import MISS, MatchCache, cache_key

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.7
MIN_TOKEN_LENGTH = 3
WORD = re.compile(r"\w+")


def tokenize(text: Optional[str]) -> Set[str]:
    """Lower-cased words longer than two characters."""
    if not text:
        return set()
    return {w for w in WORD.findall(text.lower()) if len(w) >= MIN_TOKEN_LENGTH}


def jaccard_similarity(a: Set[str], b: Set[str]) -> float:
    """Intersection over union; 0.0 when both sets are empty."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


@dataclass
class PatternMatch:
    """A stored question matched to a free-text query."""
    question: Question
    confidence: float
    pattern: Optional[QueryPattern] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern": self.pattern.to_dict() if self.pattern else None,
            "matchedQuestion": self.question.to_dict(),
            "confidence": self.confidence,
        }


class KnowledgeBase:
    """
    Read-only view of the latest learning snapshot.

    A reload builds a new snapshot and swaps the reference, so readers see
    either the old snapshot or the new one in full.
    """

    def __init__(
        self,
        data_dir: Path,
        refresh_interval: float = 0,
        cache: Optional[MatchCache] = None,
    ):
        """
        Initialize the knowledge base.

        Args:
            data_dir: Output root of the learning runs
            refresh_interval: Seconds between reloads; 0 disables refreshing
            cache: Query match cache, cleared on every reload; None disables caching
        """
        self.data_dir = Path(data_dir)
        self.refresh_interval = refresh_interval
        self.cache = cache
        self.artifacts = ArtifactStore(self.data_dir)
        self.snapshot = LearningSnapshot()
        self.last_loaded: Optional[datetime] = None

        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._stopped = threading.Event()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> bool:
        """
        Load the published snapshot.

        Returns:
            True if a snapshot was loaded; the previous one is kept otherwise
        """
        try:
            snapshot = self.artifacts.load()
        except PersistenceError as e:
            logger.warning(f"Self-learning data not available: {e}")
            return False

        with self._lock:
            self.snapshot = snapshot
            self.last_loaded = datetime.now()
        if self.cache is not None:
            self.cache.clear()

        logger.info(
            f"Self-learning data loaded: {len(snapshot.schema)} collections, "
            f"{len(snapshot.patterns)} patterns, {len(snapshot.questions)} questions"
        )
        return True

    def start(self) -> None:
        """Load now and, when an interval is set, keep reloading in the background."""
        self._stopped.clear()
        self.load()
        if self.refresh_interval > 0:
            self._schedule()

    def stop(self) -> None:
        self._stopped.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self) -> None:
        self._timer = threading.Timer(self.refresh_interval, self._refresh)
        self._timer.daemon = True
        self._timer.start()

    def _refresh(self) -> None:
        if self._stopped.is_set():
            return
        try:
            self.load()
        except Exception as e:
            logger.warning(f"Error refreshing self-learning data: {e}")
        if not self._stopped.is_set():
            self._schedule()

    # ------------------------------------------------------------------
    # Direct lookups
    # ------------------------------------------------------------------

    def get_collection_schema(self, name: str) -> Optional[CollectionProfile]:
        return self.snapshot.schema.get(name)

    def get_all_schema_info(self) -> Dict[str, CollectionProfile]:
        return self.snapshot.schema

    def get_collection_relationships(self, name: str) -> List[AnyRelationship]:
        return [r for r in self.snapshot.relationships if r.involves(name)]

    def get_all_relationships(self) -> List[AnyRelationship]:
        return self.snapshot.relationships

    def get_relationship(self, a: str, b: str) -> Optional[Relationship]:
        """Direct relationship between two collections, in either direction."""
        for rel in self.snapshot.direct_relationships:
            pair = (rel.source.collection, rel.target.collection)
            if pair == (a, b) or pair == (b, a):
                return rel
        return None

    def get_collection_query_patterns(self, name: str) -> List[QueryPattern]:
        return [
            p for p in self.snapshot.patterns
            if p.collection == name or name in p.collections
        ]

    def get_all_query_patterns(self) -> List[QueryPattern]:
        return self.snapshot.patterns

    def get_query_pattern(self, pattern_id: str) -> Optional[QueryPattern]:
        for pattern in self.snapshot.patterns:
            if pattern.id == pattern_id:
                return pattern
        return None

    def get_collection_questions(self, name: str) -> List[Question]:
        return [q for q in self.snapshot.questions if name in q.collections]

    def get_all_questions(self) -> List[Question]:
        return self.snapshot.questions

    def get_questions_by_intent(self, intent: str) -> List[Question]:
        return [q for q in self.snapshot.questions if q.intent == intent]

    def get_questions_by_category(self, category: Category) -> List[Question]:
        category = Category(category)
        return [q for q in self.snapshot.questions if q.category == category]

    def get_summary(self) -> Optional[RunSummary]:
        return self.snapshot.summary

    # ------------------------------------------------------------------
    # Query matching
    # ------------------------------------------------------------------

    def find_similar_question(
        self, query: str, threshold: float = DEFAULT_THRESHOLD
    ) -> Optional[PatternMatch]:
        """
        Find the stored question closest to a free-text query.

        Args:
            query: Free-text query
            threshold: Minimum Jaccard similarity

        Returns:
            PatternMatch for the best question, or None below the threshold
        """
        if not query:
            return None

        key = cache_key(query, threshold)
        if self.cache is not None:
            hit = self.cache.get(key)
            if hit is not MISS:
                return hit

        with self._lock:
            snapshot = self.snapshot

        query_tokens = tokenize(query)
        best: Optional[Question] = None
        best_score = 0.0
        for question in snapshot.questions:
            score = jaccard_similarity(query_tokens, tokenize(question.text))
            if score > best_score:
                best, best_score = question, score

        match = None
        if best is not None and best_score >= threshold:
            match = PatternMatch(question=best, confidence=best_score, pattern=best.pattern)
            logger.debug(f"Matched \"{query}\" to \"{best.text}\" ({best_score:.2f})")

        if self.cache is not None:
            self.cache.put(key, match)
        return match

    def get_query_pattern_for_query(
        self, query: str, threshold: float = DEFAULT_THRESHOLD
    ) -> Optional[PatternMatch]:
        """
        Best matching question that is bound to a pattern.

        Args:
            query: Free-text query
            threshold: Minimum Jaccard similarity

        Returns:
            PatternMatch with pattern set, or None
        """
        match = self.find_similar_question(query, threshold)
        if match is None or match.pattern is None:
            return None
        return match

    def build_query(self, query: str, threshold: float = DEFAULT_THRESHOLD) -> Optional[Dict[str, Any]]:
        """
        Build a concrete query for free text from the best matching pattern.

        The matched question's parameters are substituted into the template.

        Args:
            query: Free-text query
            threshold: Minimum Jaccard similarity

        Returns:
            Dict with collection, operation, query and match details, or None
        """
        match = self.get_query_pattern_for_query(query, threshold)
        if match is None:
            return None

        pattern = match.pattern
        try:
            concrete = substitute_parameters(
                pattern.query, resolve_parameters(pattern, match.question.parameters)
            )
        except Exception as e:
            logger.warning(f"Could not build query from pattern {pattern.id}: {e}")
            return None

        return {
            "collection": pattern.collection,
            "operation": pattern.operation.value,
            "query": concrete,
            "confidence": match.confidence,
            "matchedQuestion": match.question.text,
            "explanation": f"Query generated based on pattern: {pattern.description}",
        }

    def enhance_query(self, query: Dict[str, Any]) -> Dict[str, Any]:
        """
        Attach schema and relationship details to a query description.

        Args:
            query: Dict with "collection" and optionally "relatedCollection"

        Returns:
            The same dict with schemaInfo/relationshipInfo added when known
        """
        collection = query.get("collection")
        if collection:
            profile = self.get_collection_schema(collection)
            if profile is not None:
                query["schemaInfo"] = profile.to_dict()

            related = query.get("relatedCollection")
            if related:
                rel = self.get_relationship(collection, related)
                if rel is not None:
                    query["relationshipInfo"] = rel.to_dict()

        return query
