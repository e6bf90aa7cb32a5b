"""
Query Pattern Generator - Builds the catalog of query templates.

Emits, in a fixed order:
1. Per-collection patterns (find all, find by id, count)
2. Per-field patterns (find by value, numeric aggregates, per-day grouping)
3. Per-relationship join patterns, bounded when a large collection is involved
4. Domain composite patterns for known collection pairs
5. Two-hop join patterns for multi-level relationships
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId

from querylearn.models import (
    Category,
    CollectionProfile,
    Complexity,
    FieldProfile,
    FieldType,
    MultiLevelRelationship,
    ParameterSpec,
    ParamRef,
    PatternType,
    QueryPattern,
    Relationship,
    ResultShape,
    StoreOperation,
)
from querylearn.patterns.domain import generate_domain_patterns

logger = logging.getLogger(__name__)

LOOKUP_LIMIT = 100
MULTI_LEVEL_LIMIT = 50
LARGE_TARGET_SAMPLE = 20
LARGE_TARGET_PER_DOCUMENT = 100
LARGE_TARGET_COUNT_PER_DOCUMENT = 1000
LARGE_SOURCE_SAMPLE = 100

LOOKUP_VARIABLE = "localValue"


def singular(name: str) -> str:
    return name[:-1] if name.endswith("s") else name


def field_id(path: str) -> str:
    """Path as it appears inside a pattern id or an output field name."""
    return path.replace("[]", "").replace(".", "_")


def query_path(path: str) -> str:
    """Profiler path as a store field path; array markers are implicit."""
    return path.replace("[]", "")


def documents_shape() -> ResultShape:
    return ResultShape(required_fields=["_id"])


def count_shape() -> ResultShape:
    return ResultShape(required_fields=["count"], field_types={"count": "number"})


def plain_lookup(target: str, local_field: str, foreign_field: str, as_field: str) -> Dict[str, Any]:
    return {
        "$lookup": {
            "from": target,
            "localField": local_field,
            "foreignField": foreign_field,
            "as": as_field,
        }
    }


def bounded_lookup(
    target: str,
    local_field: str,
    foreign_field: str,
    as_field: str,
    per_document_limit: int,
) -> Dict[str, Any]:
    """Join that fetches at most ``per_document_limit`` related documents."""
    return {
        "$lookup": {
            "from": target,
            "let": {LOOKUP_VARIABLE: f"${local_field}"},
            "pipeline": [
                {"$match": {"$expr": {"$eq": [f"${foreign_field}", f"$${LOOKUP_VARIABLE}"]}}},
                {"$limit": per_document_limit},
            ],
            "as": as_field,
        }
    }


def _example_parameter(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return value


class QueryPatternGenerator:
    """
    Generates query patterns from profiles and relationships.

    Output is deterministic: collections and fields are visited in sorted
    order and a pattern id is only ever emitted once.
    """

    def __init__(self, include_domain_patterns: bool = True):
        """
        Initialize the generator.

        Args:
            include_domain_patterns: Emit the hard-coded game analytics patterns
        """
        self.include_domain_patterns = include_domain_patterns
        self._patterns: Dict[str, QueryPattern] = {}

    def generate(
        self,
        profiles: Dict[str, CollectionProfile],
        relationships: List[Relationship],
        multi_level: Optional[List[MultiLevelRelationship]] = None,
    ) -> List[QueryPattern]:
        """
        Generate the full pattern catalog.

        Args:
            profiles: Collection name -> CollectionProfile
            relationships: Direct relationships
            multi_level: Multi-level relationships

        Returns:
            List of QueryPattern in generation order
        """
        logger.info("Generating query patterns...")
        self._patterns = {}

        for name in sorted(profiles):
            profile = profiles[name]
            if profile.error:
                logger.debug(f"Skipping collection with profiling error: {name}")
                continue

            logger.debug(f"Generating patterns for collection: {name}")
            for pattern in self.collection_patterns(profile):
                self._add(pattern)
            for path in sorted(profile.fields):
                if path == "_id":
                    continue
                for pattern in self.field_patterns(profile, profile.fields[path]):
                    self._add(pattern)

        for rel in relationships:
            source = profiles.get(rel.source.collection)
            target = profiles.get(rel.target.collection)
            if source is None or target is None:
                logger.debug(f"Skipping relationship with unprofiled side: {rel.source} -> {rel.target}")
                continue
            for pattern in self.relationship_patterns(rel, source, target):
                self._add(pattern)

        if self.include_domain_patterns:
            for pattern in generate_domain_patterns(set(profiles)):
                self._add(pattern)

        for chain in multi_level or []:
            for pattern in self.multi_level_patterns(chain):
                self._add(pattern)

        logger.info(f"Generated {len(self._patterns)} query patterns")
        return list(self._patterns.values())

    # ------------------------------------------------------------------
    # Per collection
    # ------------------------------------------------------------------

    def collection_patterns(self, profile: CollectionProfile) -> List[QueryPattern]:
        c = profile.name
        return [
            QueryPattern(
                id=f"find_all_{c}",
                type=PatternType.FIND,
                collection=c,
                operation=StoreOperation.FIND,
                query={},
                description=f"Find all {c}",
                expected_shape=documents_shape(),
            ),
            QueryPattern(
                id=f"find_{c}_by_id",
                type=PatternType.FIND,
                collection=c,
                operation=StoreOperation.FIND,
                query={"_id": ParamRef("id_value")},
                description=f"Find {c} by ID",
                parameters=[
                    ParameterSpec(
                        name="id_value",
                        description=f"ID of the {c} document",
                        example=self._first_example(profile, "_id"),
                        type=self._field_type(profile, "_id"),
                    )
                ],
                expected_shape=documents_shape(),
            ),
            QueryPattern(
                id=f"count_{c}",
                type=PatternType.COUNT,
                collection=c,
                operation=StoreOperation.COUNT,
                query={},
                description=f"Count {c}",
                category=Category.ANALYTICS,
                expected_shape=count_shape(),
            ),
        ]

    def field_patterns(self, profile: CollectionProfile, field: FieldProfile) -> List[QueryPattern]:
        c = profile.name
        path = query_path(field.path)
        suffix = field_id(field.path)
        info = {"name": field.path, "type": field.type.value}
        patterns = []

        if field.examples and field.type not in (FieldType.OBJECT, FieldType.ARRAY):
            patterns.append(
                QueryPattern(
                    id=f"find_{c}_by_{suffix}",
                    type=PatternType.FIND,
                    collection=c,
                    operation=StoreOperation.FIND,
                    query={path: ParamRef("field_value")},
                    description=f"Find {c} by {field.path}",
                    parameters=[
                        ParameterSpec(
                            name="field_value",
                            description=f"Value of {field.path}",
                            example=_example_parameter(field.examples[0]),
                            type=field.type.value,
                        )
                    ],
                    field_info=info,
                    expected_shape=documents_shape(),
                )
            )

        exists = {"$match": {path: {"$exists": True, "$ne": None}}}

        if field.type == FieldType.NUMBER:
            patterns.append(
                self._field_aggregate(
                    f"avg_{c}_{suffix}",
                    c,
                    f"Calculate average {field.path} in {c}",
                    [exists, {"$group": {"_id": None, "average": {"$avg": f"${path}"}}}],
                    info,
                )
            )
            patterns.append(
                self._field_aggregate(
                    f"sum_{c}_{suffix}",
                    c,
                    f"Calculate sum of {field.path} in {c}",
                    [exists, {"$group": {"_id": None, "total": {"$sum": f"${path}"}}}],
                    info,
                )
            )
            patterns.append(
                self._field_aggregate(
                    f"min_max_{c}_{suffix}",
                    c,
                    f"Find minimum and maximum {field.path} in {c}",
                    [
                        exists,
                        {"$group": {"_id": None, "min": {"$min": f"${path}"}, "max": {"$max": f"${path}"}}},
                    ],
                    info,
                )
            )

        if field.type == FieldType.DATE:
            patterns.append(
                self._field_aggregate(
                    f"group_by_date_{c}_{suffix}",
                    c,
                    f"Group {c} by {field.path} date",
                    [
                        exists,
                        {
                            "$group": {
                                "_id": {"$dateToString": {"format": "%Y-%m-%d", "date": f"${path}"}},
                                "count": {"$sum": 1},
                            }
                        },
                        {"$sort": {"_id": 1}},
                    ],
                    info,
                )
            )

        return patterns

    # ------------------------------------------------------------------
    # Per relationship
    # ------------------------------------------------------------------

    def join_strategy(self, source: CollectionProfile, target: CollectionProfile) -> Optional[str]:
        """
        How a join between two collections should be bounded.

        Returns:
            "bounded" when the target is large and at least as big as the
            source, "sampled" when either side is otherwise large, else None
        """
        if target.is_large and target.count >= source.count:
            return "bounded"
        if source.is_large or target.is_large:
            return "sampled"
        return None

    def relationship_patterns(
        self,
        rel: Relationship,
        source: CollectionProfile,
        target: CollectionProfile,
    ) -> List[QueryPattern]:
        s, t = source.name, target.name
        s_field, t_field = rel.source.field, rel.target.field
        as_field = f"related_{t}"
        info = {"source": rel.source.to_dict(), "target": rel.target.to_dict()}
        strategy = self.join_strategy(source, target)

        logger.debug(f"Generating patterns for relationship: {rel.source} -> {rel.target} ({strategy or 'plain'})")

        count_projection = {
            "_id": 1,
            s_field: 1,
            "related_count": {"$size": f"${as_field}"},
        }

        if strategy == "bounded":
            lookup_pipeline = [
                {"$sample": {"size": LARGE_TARGET_SAMPLE}},
                bounded_lookup(t, s_field, t_field, as_field, LARGE_TARGET_PER_DOCUMENT),
                {"$limit": LARGE_TARGET_SAMPLE},
            ]
            count_projection["note"] = {
                "$literal": f"Count may be limited to {LARGE_TARGET_COUNT_PER_DOCUMENT} {t} per {singular(s)}"
            }
            count_pipeline = [
                {"$sample": {"size": LARGE_TARGET_SAMPLE}},
                bounded_lookup(t, s_field, t_field, as_field, LARGE_TARGET_COUNT_PER_DOCUMENT),
                {"$project": count_projection},
                {"$sort": {"related_count": -1}},
                {"$limit": LARGE_TARGET_SAMPLE},
            ]
        elif strategy == "sampled":
            lookup_pipeline = [
                {"$sample": {"size": LARGE_SOURCE_SAMPLE}},
                plain_lookup(t, s_field, t_field, as_field),
                {"$limit": LOOKUP_LIMIT},
            ]
            count_pipeline = [
                {"$sample": {"size": LARGE_SOURCE_SAMPLE}},
                plain_lookup(t, s_field, t_field, as_field),
                {"$project": count_projection},
                {"$sort": {"related_count": -1}},
                {"$limit": LOOKUP_LIMIT},
            ]
        else:
            lookup_pipeline = [
                plain_lookup(t, s_field, t_field, as_field),
                {"$limit": LOOKUP_LIMIT},
            ]
            count_pipeline = [
                plain_lookup(t, s_field, t_field, as_field),
                {"$project": count_projection},
                {"$sort": {"related_count": -1}},
                {"$limit": LOOKUP_LIMIT},
            ]

        optimized = strategy is not None
        return [
            QueryPattern(
                id=f"lookup_{s}_{t}",
                type=PatternType.LOOKUP,
                collection=s,
                collections=[s, t],
                operation=StoreOperation.AGGREGATE,
                query=lookup_pipeline,
                description=(
                    f"Find a sample of {s} with their related {t}" if optimized
                    else f"Find {s} with their related {t}"
                ),
                complexity=Complexity.INTERMEDIATE,
                category=Category.RELATIONSHIP,
                optimized=optimized,
                relationship_info=info,
                expected_shape=documents_shape(),
            ),
            QueryPattern(
                id=f"count_related_{s}_{t}",
                type=PatternType.LOOKUP,
                collection=s,
                collections=[s, t],
                operation=StoreOperation.AGGREGATE,
                query=count_pipeline,
                description=(
                    f"Count {t} related to a sample of {s}" if optimized
                    else f"Count {t} related to each {s}"
                ),
                complexity=Complexity.INTERMEDIATE,
                category=Category.RELATIONSHIP,
                optimized=optimized,
                relationship_info=info,
                expected_shape=documents_shape(),
            ),
        ]

    # ------------------------------------------------------------------
    # Multi-level
    # ------------------------------------------------------------------

    def multi_level_patterns(self, chain: MultiLevelRelationship) -> List[QueryPattern]:
        a, b, c = chain.collections
        first, second = chain.first, chain.second
        suffix = f"{a}_{b}_{c}"
        a_field = first.source.field
        info = {"path": [hop.to_dict() for hop in chain.path], "collections": chain.collections}

        def joins() -> List[Dict[str, Any]]:
            return [
                plain_lookup(b, a_field, first.target.field, f"related_{b}"),
                {"$unwind": {"path": f"$related_{b}", "preserveNullAndEmptyArrays": True}},
                plain_lookup(c, f"related_{b}.{second.source.field}", second.target.field, f"related_{c}"),
            ]

        def pattern(kind: str, description: str, tail: List[Dict[str, Any]], category: Category) -> QueryPattern:
            return QueryPattern(
                id=f"multi_level_{kind}_{suffix}",
                type=PatternType.MULTI_LOOKUP,
                collection=a,
                collections=[a, b, c],
                operation=StoreOperation.AGGREGATE,
                query=joins() + tail,
                description=description,
                complexity=Complexity.ADVANCED,
                category=category,
                relationship_info=info,
                expected_shape=documents_shape(),
            )

        return [
            pattern(
                "lookup",
                f"Find {a} with related {b} and {c}",
                [
                    {"$project": {"_id": 1, a_field: 1, f"related_{b}": 1, f"related_{c}": 1}},
                    {"$limit": MULTI_LEVEL_LIMIT},
                ],
                Category.RELATIONSHIP,
            ),
            pattern(
                "count",
                f"Count {c} related to {a} through {b}",
                [
                    {
                        "$project": {
                            "_id": 1,
                            a_field: 1,
                            f"{b}_id": f"$related_{b}._id",
                            "related_count": {"$size": f"$related_{c}"},
                        }
                    },
                    {"$sort": {"related_count": -1}},
                    {"$limit": MULTI_LEVEL_LIMIT},
                ],
                Category.RELATIONSHIP,
            ),
            pattern(
                "aggregate",
                f"Aggregate {c} metrics related to {a} through {b}",
                [
                    {"$unwind": {"path": f"$related_{c}", "preserveNullAndEmptyArrays": True}},
                    {
                        "$group": {
                            "_id": "$_id",
                            field_id(a_field): {"$first": f"${a_field}"},
                            f"{b}_count": {"$sum": 1},
                            f"{c}_count": {
                                "$sum": {"$cond": [{"$ifNull": [f"$related_{c}", False]}, 1, 0]}
                            },
                        }
                    },
                    {"$sort": {f"{c}_count": -1}},
                    {"$limit": MULTI_LEVEL_LIMIT},
                ],
                Category.RELATIONSHIP,
            ),
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _field_aggregate(
        pattern_id: str,
        collection: str,
        description: str,
        pipeline: List[Dict[str, Any]],
        info: Dict[str, str],
    ) -> QueryPattern:
        return QueryPattern(
            id=pattern_id,
            type=PatternType.AGGREGATE,
            collection=collection,
            operation=StoreOperation.AGGREGATE,
            query=pipeline,
            description=description,
            complexity=Complexity.INTERMEDIATE,
            category=Category.ANALYTICS,
            field_info=info,
        )

    @staticmethod
    def _first_example(profile: CollectionProfile, path: str) -> Any:
        field = profile.get_field(path)
        if field and field.examples:
            return _example_parameter(field.examples[0])
        return None

    @staticmethod
    def _field_type(profile: CollectionProfile, path: str) -> Optional[str]:
        field = profile.get_field(path)
        return field.type.value if field else None

    def _add(self, pattern: QueryPattern) -> None:
        if pattern.id in self._patterns:
            logger.debug(f"Duplicate pattern id suppressed: {pattern.id}")
            return
        self._patterns[pattern.id] = pattern
