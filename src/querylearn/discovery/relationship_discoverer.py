"""
Relationship Discoverer - Infers cross-collection relationships.

Combines three passes over the collection profiles:
1. Known hypotheses from configuration, verified against live data
2. Identifier-like fields tested against every other collection's _id
3. Identifier fields nested under a context object, matched to collections
   named after the field

Verified relationships carry a match count, a confidence tier and an advisory
cardinality. Pairs of relationships sharing a middle collection are then
chained into multi-level relationships.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId

from querylearn.models import (
    Cardinality,
    CollectionProfile,
    Confidence,
    FieldRef,
    FieldType,
    LearningConfig,
    MultiLevelRelationship,
    Relationship,
)
from querylearn.profiler.schema_profiler import is_id_key
from querylearn.store.base import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class Verification:
    """Evidence that a source value resolves to a target document."""
    match_count: int
    cardinality: Cardinality
    source_value: Any
    target_value: Any

    @property
    def confidence(self) -> Confidence:
        return Confidence.from_match_count(self.match_count)


def get_nested_value(document: Dict[str, Any], path: str) -> Any:
    """Resolve a dotted path inside a document, None when absent."""
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def get_collection_variants(name: str) -> List[str]:
    """Get singular/plural variants of a collection name."""
    lower = name.lower()
    variants = [lower]

    # Plural -> singular
    if lower.endswith("ies"):
        variants.append(lower[:-3] + "y")
    elif lower.endswith("es"):
        variants.append(lower[:-2])
    elif lower.endswith("s"):
        variants.append(lower[:-1])

    # Singular -> plural
    if lower.endswith("y"):
        variants.append(lower[:-1] + "ies")
    elif lower.endswith(("s", "x", "ch", "sh")):
        variants.append(lower + "es")
    else:
        variants.append(lower + "s")

    return variants


def strip_id_suffix(name: str) -> str:
    for suffix in ("_id", "Id"):
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)]
    return name


def chain_relationships(relationships: List[Relationship]) -> List[MultiLevelRelationship]:
    """
    Chain direct relationships A -> B and B -> C into A -> B -> C.

    Chains that return to their source collection are skipped, and only the
    first chain per (A, B, C) collection triple is kept.

    Args:
        relationships: Direct relationships

    Returns:
        Multi-level relationships in discovery order
    """
    outgoing: Dict[str, List[Relationship]] = defaultdict(list)
    for rel in relationships:
        outgoing[rel.source.collection].append(rel)

    chains: Dict[Tuple[str, str, str], MultiLevelRelationship] = {}
    for first in relationships:
        middle = first.target.collection
        for second in outgoing.get(middle, []):
            if second.target.collection == first.source.collection:
                continue

            key = (first.source.collection, middle, second.target.collection)
            if key in chains:
                continue

            chains[key] = MultiLevelRelationship(first=first, second=second)
            logger.debug(f"Discovered multi-level relationship: {' -> '.join(key)}")

    return list(chains.values())


class RelationshipDiscoverer:
    """
    Discovers relationships between profiled collections.

    Every verification goes through the store; a failure while checking one
    candidate only drops (or, for known hypotheses, marks unverified) that
    candidate.
    """

    def __init__(
        self,
        store: DocumentStore,
        known_relationships: Optional[List[Dict[str, Any]]] = None,
        descriptions: Optional[Dict[str, str]] = None,
        context_field: str = "context",
    ):
        """
        Initialize the discoverer.

        Args:
            store: Document store used for verification queries
            known_relationships: Hypotheses as {source: {collection, field}, target: {...}}
            descriptions: "<source>-<target>" -> human-readable description
            context_field: Name of the object field searched for nested ids
        """
        self.store = store
        self.known_relationships = known_relationships or []
        self.descriptions = descriptions or {}
        self.context_field = context_field

        self._relationships: Dict[Tuple[str, str, str, str], Relationship] = {}

    @classmethod
    def from_config(cls, store: DocumentStore, config: LearningConfig) -> RelationshipDiscoverer:
        return cls(
            store,
            known_relationships=config.known_relationships,
            descriptions=config.relationship_descriptions,
            context_field=config.context_field,
        )

    def describe(self, source: str, target: str) -> str:
        return self.descriptions.get(
            f"{source}-{target}", f"{source} are related to {target}"
        )

    def discover(
        self, profiles: Dict[str, CollectionProfile]
    ) -> Tuple[List[Relationship], List[MultiLevelRelationship]]:
        """
        Run all discovery passes.

        Args:
            profiles: Collection name -> CollectionProfile

        Returns:
            Tuple of (direct relationships, multi-level relationships)
        """
        logger.info("Starting relationship discovery...")
        self._relationships = {}

        self.verify_known(profiles)
        self.discover_id_fields(profiles)
        self.discover_context_fields(profiles)

        direct = list(self._relationships.values())
        multi_level = chain_relationships(direct)

        logger.info(
            f"Discovered {len(direct) + len(multi_level)} relationships in total "
            f"(including {len(multi_level)} multi-level relationships)"
        )
        return direct, multi_level

    def verify_known(self, profiles: Dict[str, CollectionProfile]) -> List[Relationship]:
        """Verify configured hypotheses whose collections were profiled."""
        results = []
        for hypothesis in self.known_relationships:
            try:
                source = FieldRef.from_dict(hypothesis["source"])
                target = FieldRef.from_dict(hypothesis["target"])
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed known relationship {hypothesis!r}: {e}")
                continue

            if source.collection == target.collection:
                logger.warning(f"Skipping known relationship {source} -> {target}: same collection")
                continue

            if source.collection not in profiles or target.collection not in profiles:
                logger.debug(f"Skipping known relationship {source} -> {target}: collection not profiled")
                continue

            logger.debug(f"Verifying known relationship: {source} -> {target}")
            verification = self.verify(source, target)

            if verification:
                rel = Relationship(
                    source=source,
                    target=target,
                    cardinality=verification.cardinality,
                    confidence=verification.confidence,
                    verified=True,
                    match_count=verification.match_count,
                    description=self.describe(source.collection, target.collection),
                )
                logger.info(f"Verified relationship: {source} -> {target} ({rel.match_count} matches)")
            else:
                rel = Relationship(
                    source=source,
                    target=target,
                    description=self.describe(source.collection, target.collection),
                )
                logger.info(f"Could not verify relationship: {source} -> {target}")

            self._add(rel)
            results.append(rel)
        return results

    def discover_id_fields(self, profiles: Dict[str, CollectionProfile]) -> List[Relationship]:
        """Test identifier-like fields against every other collection's _id."""
        found = []
        for source_name in sorted(profiles):
            for path in sorted(profiles[source_name].fields):
                field = profiles[source_name].fields[path]
                if path == "_id" or not self._is_candidate_field(path, field.is_id):
                    continue
                if field.type in (FieldType.OBJECT, FieldType.ARRAY):
                    continue

                for target_name in sorted(profiles):
                    if target_name == source_name or "_id" not in profiles[target_name].fields:
                        continue

                    rel = self._discover(
                        FieldRef(source_name, path),
                        FieldRef(target_name, "_id"),
                        self.describe(source_name, target_name),
                    )
                    if rel:
                        found.append(rel)
        return found

    def discover_context_fields(self, profiles: Dict[str, CollectionProfile]) -> List[Relationship]:
        """Match ids nested under the context object to collections named after them."""
        found = []
        prefix = f"{self.context_field}."

        for source_name in sorted(profiles):
            fields = profiles[source_name].fields
            if self.context_field not in fields:
                continue

            logger.debug(f"Checking for nested relationships in {source_name}.{self.context_field}")
            for path in sorted(fields):
                if not path.startswith(prefix) or not path.endswith(("Id", "_id")):
                    continue

                base = strip_id_suffix(path[len(prefix):])
                for candidate in get_collection_variants(base):
                    if candidate == source_name or candidate not in profiles:
                        continue

                    rel = self._discover(
                        FieldRef(source_name, path),
                        FieldRef(candidate, "_id"),
                        f"{source_name.capitalize()} record {candidate} interactions",
                    )
                    if rel:
                        found.append(rel)
                    break
        return found

    def verify(self, source: FieldRef, target: FieldRef) -> Optional[Verification]:
        """
        Check that a sampled source value resolves in the target collection.

        Tries the exact value, then a case-insensitive match for strings, then
        the ObjectId form of 24-hex strings.

        Returns:
            Verification, or None when no match was found or a query failed
        """
        try:
            source_doc = self.store.find_one(
                source.collection, {source.field: {"$exists": True, "$ne": None}}
            )
            if not source_doc:
                logger.debug(f"No document found in {source.collection} with field {source.field}")
                return None

            source_value = get_nested_value(source_doc, source.field)
            if source_value is None or source_value == "":
                logger.debug(f"Field {source} is empty in sample document")
                return None

            target_doc = None
            for candidate in self._candidate_values(source_value):
                target_doc = self.store.find_one(target.collection, {target.field: candidate})
                if target_doc:
                    break

            if not target_doc:
                return None

            match_count = self.store.count(source.collection, {source.field: source_value})
            return Verification(
                match_count=match_count,
                cardinality=self.determine_cardinality(source),
                source_value=source_value,
                target_value=get_nested_value(target_doc, target.field),
            )

        except Exception as e:
            logger.warning(f"Error verifying relationship {source} -> {target}: {e}")
            return None

    def determine_cardinality(self, source: FieldRef) -> Cardinality:
        """
        Estimate cardinality from whether any source value repeats.

        Only a repeated value is observable here, so the answer is advisory:
        a repeat gives many-to-one, otherwise one-to-many.
        """
        pipeline = [
            {"$match": {source.field: {"$exists": True, "$ne": None}}},
            {"$group": {"_id": f"${source.field}", "count": {"$sum": 1}}},
            {"$match": {"count": {"$gt": 1}}},
            {"$limit": 1},
        ]
        try:
            repeated = self.store.aggregate(source.collection, pipeline)
        except Exception as e:
            logger.warning(f"Error determining cardinality for {source}: {e}")
            return Cardinality.UNKNOWN

        return Cardinality.MANY_TO_ONE if repeated else Cardinality.ONE_TO_MANY

    @staticmethod
    def _candidate_values(value: Any) -> List[Any]:
        candidates: List[Any] = [value]
        if isinstance(value, str):
            candidates.append({"$regex": f"^{re.escape(value)}$", "$options": "i"})
            if ObjectId.is_valid(value) and len(value) == 24:
                candidates.append(ObjectId(value))
        elif isinstance(value, ObjectId):
            candidates.append(str(value))
        return candidates

    @staticmethod
    def _is_candidate_field(path: str, is_id: bool) -> bool:
        if "[]" in path:
            return False
        return is_id or is_id_key(path)

    def _discover(self, source: FieldRef, target: FieldRef, description: str) -> Optional[Relationship]:
        key = (source.collection, source.field, target.collection, target.field)
        if key in self._relationships:
            return None

        logger.debug(f"Checking potential relationship: {source} -> {target}")
        verification = self.verify(source, target)
        if not verification or verification.match_count <= 0:
            return None

        rel = Relationship(
            source=source,
            target=target,
            cardinality=verification.cardinality,
            confidence=verification.confidence,
            verified=True,
            match_count=verification.match_count,
            description=description,
            discovered=True,
        )
        self._add(rel)
        logger.info(f"Discovered new relationship: {source} -> {target} ({rel.match_count} matches)")
        return rel

    def _add(self, rel: Relationship) -> None:
        if rel.key not in self._relationships:
            self._relationships[rel.key] = rel
