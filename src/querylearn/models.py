"""
Core data models for the querylearn package.

Defines the structures produced by one learning run: collection profiles,
relationships, query patterns, questions with their execution records, and
the run summary and configuration.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union


class FieldType(str, Enum):
    """Type tags inferred from sampled document values."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ARRAY = "array"
    OBJECT = "object"
    OBJECT_ID = "objectId"
    BINARY = "binary"
    NULL = "null"
    UNKNOWN = "unknown"


class SizeClass(str, Enum):
    """Cost classification of a collection, computed once by the profiler."""
    SMALL = "small"
    LARGE = "large"


class Cardinality(str, Enum):
    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_ONE = "many-to-one"
    MANY_TO_MANY = "many-to-many"
    UNKNOWN = "unknown"


class Confidence(str, Enum):
    """Evidence tier of a relationship, derived from its match count."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def score(self) -> int:
        return {"low": 40, "medium": 70, "high": 100}[self.value]

    @classmethod
    def from_match_count(cls, match_count: int) -> Confidence:
        if match_count > 100:
            return cls.HIGH
        if match_count > 10:
            return cls.MEDIUM
        return cls.LOW

    def __lt__(self, other: Any) -> bool:
        if not isinstance(other, Confidence):
            return NotImplemented
        return self.score < other.score


class PatternType(str, Enum):
    FIND = "find"
    COUNT = "count"
    AGGREGATE = "aggregate"
    LOOKUP = "lookup"
    MULTI_LOOKUP = "multi-lookup"
    COMPLEX = "complex"


class StoreOperation(str, Enum):
    """Operation a pattern runs against the document store."""
    FIND = "find"
    AGGREGATE = "aggregate"
    COUNT = "countDocuments"
    DISTINCT = "distinct"


class Complexity(str, Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Category(str, Enum):
    RETRIEVAL = "retrieval"
    ANALYTICS = "analytics"
    RELATIONSHIP = "relationship"
    GAME_ANALYTICS = "game_analytics"
    EDUCATIONAL_ANALYTICS = "educational_analytics"


# ---------------------------------------------------------------------------
# Profiling
# ---------------------------------------------------------------------------

@dataclass
class FieldProfile:
    """Inferred shape of one dotted field path within a collection."""
    path: str
    type: FieldType
    nullable: bool = False
    is_id: bool = False
    examples: List[Any] = field(default_factory=list)
    alternative_types: List[FieldType] = field(default_factory=list)
    array_item_type: Optional[FieldType] = None
    nested_paths: List[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        """Last segment of the path."""
        return self.path.rsplit(".", 1)[-1]

    @property
    def types(self) -> List[FieldType]:
        """Primary type followed by any alternative types."""
        return [self.type] + [t for t in self.alternative_types if t != self.type]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: Dict[str, Any] = {
            "path": self.path,
            "type": self.type.value,
            "nullable": self.nullable,
            "isId": self.is_id,
            "examples": self.examples,
        }
        if self.alternative_types:
            data["alternativeTypes"] = [t.value for t in self.alternative_types]
        if self.array_item_type is not None:
            data["arrayItemType"] = self.array_item_type.value
        if self.nested_paths:
            data["nestedPaths"] = self.nested_paths
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FieldProfile:
        """Create from dictionary."""
        item_type = data.get("arrayItemType")
        return cls(
            path=data["path"],
            type=FieldType(data["type"]),
            nullable=data.get("nullable", False),
            is_id=data.get("isId", False),
            examples=data.get("examples", []),
            alternative_types=[FieldType(t) for t in data.get("alternativeTypes", [])],
            array_item_type=FieldType(item_type) if item_type else None,
            nested_paths=data.get("nestedPaths", []),
        )


@dataclass
class CollectionProfile:
    """Profile of a single collection, superseded entirely on every run."""
    name: str
    fields: Dict[str, FieldProfile] = field(default_factory=dict)
    count: int = 0
    sample_data: List[Dict[str, Any]] = field(default_factory=list)
    size_class: SizeClass = SizeClass.SMALL
    error: Optional[str] = None
    last_updated: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def is_large(self) -> bool:
        return self.size_class == SizeClass.LARGE

    @property
    def field_paths(self) -> List[str]:
        return list(self.fields.keys())

    def get_field(self, path: str) -> Optional[FieldProfile]:
        return self.fields.get(path)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: Dict[str, Any] = {
            "name": self.name,
            "fields": {path: f.to_dict() for path, f in self.fields.items()},
            "count": self.count,
            "sampleData": self.sample_data,
            "sizeClass": self.size_class.value,
            "lastUpdated": self.last_updated,
        }
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CollectionProfile:
        """Create from dictionary."""
        return cls(
            name=data["name"],
            fields={
                path: FieldProfile.from_dict(f)
                for path, f in data.get("fields", {}).items()
            },
            count=data.get("count", 0),
            sample_data=data.get("sampleData", []),
            size_class=SizeClass(data.get("sizeClass", "small")),
            error=data.get("error"),
            last_updated=data.get("lastUpdated", ""),
        )


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldRef:
    """A field within a named collection."""
    collection: str
    field: str

    def __str__(self) -> str:
        return f"{self.collection}.{self.field}"

    def to_dict(self) -> Dict[str, str]:
        return {"collection": self.collection, "field": self.field}

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> FieldRef:
        return cls(collection=data["collection"], field=data["field"])


@dataclass
class Relationship:
    """A hypothesized foreign-key-like link between two collections."""
    source: FieldRef
    target: FieldRef
    cardinality: Cardinality = Cardinality.UNKNOWN
    confidence: Confidence = Confidence.LOW
    verified: bool = False
    match_count: int = 0
    description: str = ""
    discovered: bool = False

    kind = "direct"

    def __post_init__(self):
        if self.source.collection == self.target.collection:
            raise ValueError(
                f"Relationship source and target must differ: {self.source} -> {self.target}"
            )

    @property
    def key(self) -> Tuple[str, str, str, str]:
        return (
            self.source.collection,
            self.source.field,
            self.target.collection,
            self.target.field,
        )

    def involves(self, collection: str) -> bool:
        return collection in (self.source.collection, self.target.collection)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "type": self.kind,
            "source": self.source.to_dict(),
            "target": self.target.to_dict(),
            "cardinality": self.cardinality.value,
            "confidence": self.confidence.value,
            "verified": self.verified,
            "matchCount": self.match_count,
            "description": self.description,
            "discovered": self.discovered,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Relationship:
        """Create from dictionary."""
        return cls(
            source=FieldRef.from_dict(data["source"]),
            target=FieldRef.from_dict(data["target"]),
            cardinality=Cardinality(data.get("cardinality", "unknown")),
            confidence=Confidence(data.get("confidence", "low")),
            verified=data.get("verified", False),
            match_count=data.get("matchCount", 0),
            description=data.get("description", ""),
            discovered=data.get("discovered", False),
        )


@dataclass
class MultiLevelRelationship:
    """Two direct relationships chained through a shared middle collection."""
    first: Relationship
    second: Relationship
    description: str = ""

    kind = "multi-level"

    def __post_init__(self):
        if self.first.target.collection != self.second.source.collection:
            raise ValueError(
                f"Hops do not chain: {self.first.target.collection} != "
                f"{self.second.source.collection}"
            )
        if self.second.target.collection == self.first.source.collection:
            raise ValueError(
                f"Multi-level relationship returns to its source: "
                f"{self.first.source.collection}"
            )
        if not self.description:
            self.description = (
                f"{self.source_collection} connect to {self.target_collection} "
                f"through {self.middle_collection}"
            )

    @property
    def path(self) -> List[Relationship]:
        return [self.first, self.second]

    @property
    def source_collection(self) -> str:
        return self.first.source.collection

    @property
    def middle_collection(self) -> str:
        return self.first.target.collection

    @property
    def target_collection(self) -> str:
        return self.second.target.collection

    @property
    def collections(self) -> List[str]:
        return [self.source_collection, self.middle_collection, self.target_collection]

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.source_collection, self.middle_collection, self.target_collection)

    @property
    def confidence(self) -> Confidence:
        return min(self.first.confidence, self.second.confidence)

    @property
    def score(self) -> float:
        return min(self.first.confidence.score, self.second.confidence.score) / 100

    def involves(self, collection: str) -> bool:
        return collection in self.collections

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "type": self.kind,
            "path": [hop.to_dict() for hop in self.path],
            "collections": self.collections,
            "description": self.description,
            "confidence": self.confidence.value,
            "score": self.score,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> MultiLevelRelationship:
        """Create from dictionary."""
        first, second = data["path"][:2]
        return cls(
            first=Relationship.from_dict(first),
            second=Relationship.from_dict(second),
            description=data.get("description", ""),
        )


AnyRelationship = Union[Relationship, MultiLevelRelationship]


def relationship_from_dict(data: Dict[str, Any]) -> AnyRelationship:
    """Restore either relationship kind from its serialized form."""
    if data.get("type") == MultiLevelRelationship.kind:
        return MultiLevelRelationship.from_dict(data)
    return Relationship.from_dict(data)


# ---------------------------------------------------------------------------
# Query patterns
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ParamRef:
    """Placeholder node inside a query template, resolved at execution time."""
    name: str
    default: Any = None

    MARKER = "$param"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {self.MARKER: self.name}
        if self.default is not None:
            data["default"] = self.default
        return data

    @classmethod
    def is_encoded(cls, value: Any) -> bool:
        return (
            isinstance(value, dict)
            and cls.MARKER in value
            and set(value) <= {cls.MARKER, "default"}
        )


def encode_template(value: Any) -> Any:
    """Replace ParamRef nodes with their JSON form."""
    if isinstance(value, ParamRef):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: encode_template(v) for k, v in value.items()}
    if isinstance(value, list):
        return [encode_template(v) for v in value]
    return value


def decode_template(value: Any) -> Any:
    """Inverse of encode_template."""
    if ParamRef.is_encoded(value):
        return ParamRef(value[ParamRef.MARKER], value.get("default"))
    if isinstance(value, dict):
        return {k: decode_template(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_template(v) for v in value]
    return value


@dataclass
class ParameterSpec:
    """Describes a named parameter a pattern template expects."""
    name: str
    description: str = ""
    example: Any = None
    default: Any = None
    type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "example": self.example,
            "default": self.default,
            "type": self.type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ParameterSpec:
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            example=data.get("example"),
            default=data.get("default"),
            type=data.get("type"),
        )


@dataclass
class ResultShape:
    """Expected shape of a query's results, checked after execution."""
    required_fields: List[str] = field(default_factory=list)
    field_types: Dict[str, str] = field(default_factory=dict)
    min_count: Optional[int] = None
    max_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requiredFields": self.required_fields,
            "fieldTypes": self.field_types,
            "minCount": self.min_count,
            "maxCount": self.max_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ResultShape:
        return cls(
            required_fields=data.get("requiredFields", []),
            field_types=data.get("fieldTypes", {}),
            min_count=data.get("minCount"),
            max_count=data.get("maxCount"),
        )


@dataclass
class QueryPattern:
    """A reusable, parameterized query template plus metadata."""
    id: str
    type: PatternType
    collection: str
    operation: StoreOperation
    query: Union[Dict[str, Any], List[Dict[str, Any]]]
    description: str = ""
    collections: List[str] = field(default_factory=list)
    parameters: List[ParameterSpec] = field(default_factory=list)
    complexity: Complexity = Complexity.BASIC
    category: Category = Category.RETRIEVAL
    optimized: bool = False
    field_info: Optional[Dict[str, str]] = None
    relationship_info: Optional[Dict[str, Any]] = None
    expected_shape: Optional[ResultShape] = None

    def __post_init__(self):
        if not self.collections:
            self.collections = [self.collection]

    @property
    def pipeline(self) -> List[Dict[str, Any]]:
        """Query as an aggregation pipeline."""
        if isinstance(self.query, list):
            return self.query
        return [self.query]

    def get_parameter(self, name: str) -> Optional[ParameterSpec]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def render(self) -> str:
        """Shell-style rendering of the template for display."""
        body = json.dumps(encode_template(self.query), indent=2, default=str)
        if self.operation == StoreOperation.AGGREGATE:
            return f"db.{self.collection}.aggregate({body})"
        if self.operation == StoreOperation.COUNT:
            return f"db.{self.collection}.countDocuments({body})"
        if self.operation == StoreOperation.DISTINCT:
            return f"db.{self.collection}.distinct({body})"
        return f"db.{self.collection}.find({body})"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "type": self.type.value,
            "collection": self.collection,
            "collections": self.collections,
            "description": self.description,
            "operation": self.operation.value,
            "query": encode_template(self.query),
            "template": self.render(),
            "parameters": [p.to_dict() for p in self.parameters],
            "complexity": self.complexity.value,
            "category": self.category.value,
            "optimized": self.optimized,
            "fieldInfo": self.field_info,
            "relationshipInfo": self.relationship_info,
            "expectedShape": self.expected_shape.to_dict() if self.expected_shape else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> QueryPattern:
        """Create from dictionary."""
        shape = data.get("expectedShape")
        return cls(
            id=data["id"],
            type=PatternType(data["type"]),
            collection=data["collection"],
            operation=StoreOperation(data["operation"]),
            query=decode_template(data.get("query", {})),
            description=data.get("description", ""),
            collections=data.get("collections", []),
            parameters=[ParameterSpec.from_dict(p) for p in data.get("parameters", [])],
            complexity=Complexity(data.get("complexity", "basic")),
            category=Category(data.get("category", "retrieval")),
            optimized=data.get("optimized", False),
            field_info=data.get("fieldInfo"),
            relationship_info=data.get("relationshipInfo"),
            expected_shape=ResultShape.from_dict(shape) if shape else None,
        )


# ---------------------------------------------------------------------------
# Questions and execution
# ---------------------------------------------------------------------------

@dataclass
class ValidationResult:
    valid: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"valid": self.valid}
        if self.reason:
            data["reason"] = self.reason
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ValidationResult:
        return cls(valid=data.get("valid", False), reason=data.get("reason"))


@dataclass
class ExecutionRecord:
    """Outcome of validating one question against the live store."""
    success: bool
    skipped: bool = False
    reason: Optional[str] = None
    result_count: int = 0
    sample_results: List[Any] = field(default_factory=list)
    execution_time_ms: float = 0.0
    optimized: bool = False
    fallback: bool = False
    timed_out: bool = False
    attempts: int = 0
    original_error: Optional[str] = None
    error: Optional[str] = None
    validation: Optional[ValidationResult] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "success": self.success,
            "skipped": self.skipped,
            "reason": self.reason,
            "resultCount": self.result_count,
            "sampleResults": self.sample_results,
            "executionTime": self.execution_time_ms,
            "optimized": self.optimized,
            "fallback": self.fallback,
            "timedOut": self.timed_out,
            "attempts": self.attempts,
            "originalError": self.original_error,
            "error": self.error,
            "validation": self.validation.to_dict() if self.validation else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ExecutionRecord:
        """Create from dictionary."""
        validation = data.get("validation")
        return cls(
            success=data.get("success", False),
            skipped=data.get("skipped", False),
            reason=data.get("reason"),
            result_count=data.get("resultCount", 0),
            sample_results=data.get("sampleResults", []),
            execution_time_ms=data.get("executionTime", 0.0),
            optimized=data.get("optimized", False),
            fallback=data.get("fallback", False),
            timed_out=data.get("timedOut", False),
            attempts=data.get("attempts", 0),
            original_error=data.get("originalError"),
            error=data.get("error"),
            validation=ValidationResult.from_dict(validation) if validation else None,
        )


@dataclass
class Question:
    """A natural-language question bound to a pattern by id."""
    id: str
    text: str
    intent: str
    collections: List[str] = field(default_factory=list)
    pattern_id: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    complexity: Complexity = Complexity.BASIC
    category: Category = Category.RETRIEVAL
    parameterized: bool = False
    relationship: Optional[Dict[str, Any]] = None
    answer: Optional[str] = None
    execution: Optional[ExecutionRecord] = None

    # Resolved in memory only; persisted by pattern_id
    pattern: Optional[QueryPattern] = field(default=None, repr=False, compare=False)

    @property
    def primary_collection(self) -> Optional[str]:
        if self.pattern is not None:
            return self.pattern.collection
        if self.collections:
            return self.collections[0]
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "text": self.text,
            "intent": self.intent,
            "collections": self.collections,
            "patternId": self.pattern_id,
            "parameters": self.parameters,
            "complexity": self.complexity.value,
            "category": self.category.value,
            "parameterized": self.parameterized,
            "relationship": self.relationship,
            "answer": self.answer,
            "execution": self.execution.to_dict() if self.execution else None,
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        patterns: Optional[Dict[str, QueryPattern]] = None,
    ) -> Question:
        """Create from dictionary, resolving the pattern id when possible."""
        execution = data.get("execution")
        pattern_id = data.get("patternId")
        return cls(
            id=data["id"],
            text=data["text"],
            intent=data.get("intent", ""),
            collections=data.get("collections", []),
            pattern_id=pattern_id,
            parameters=data.get("parameters", {}),
            complexity=Complexity(data.get("complexity", "basic")),
            category=Category(data.get("category", "retrieval")),
            parameterized=data.get("parameterized", False),
            relationship=data.get("relationship"),
            answer=data.get("answer"),
            execution=ExecutionRecord.from_dict(execution) if execution else None,
            pattern=(patterns or {}).get(pattern_id) if pattern_id else None,
        )


# ---------------------------------------------------------------------------
# Run configuration and results
# ---------------------------------------------------------------------------

DEFAULT_COLLECTIONS = ["players", "events", "items", "zones", "questions", "leaderboards"]

DEFAULT_KNOWN_RELATIONSHIPS = [
    {"source": {"collection": "players", "field": "playerId"},
     "target": {"collection": "events", "field": "playerId"}},
    {"source": {"collection": "events", "field": "context.itemId"},
     "target": {"collection": "items", "field": "_id"}},
    {"source": {"collection": "events", "field": "context.zoneId"},
     "target": {"collection": "zones", "field": "_id"}},
    {"source": {"collection": "events", "field": "context.questionId"},
     "target": {"collection": "questions", "field": "_id"}},
    {"source": {"collection": "players", "field": "playerId"},
     "target": {"collection": "leaderboards", "field": "playerId"}},
]

DEFAULT_RELATIONSHIP_DESCRIPTIONS = {
    "players-events": "Players generate events through their actions",
    "events-players": "Events are associated with players",
    "players-leaderboards": "Players have scores on leaderboards",
    "leaderboards-players": "Leaderboard entries belong to players",
    "events-items": "Events record item interactions",
    "items-events": "Items are used in events",
    "events-zones": "Events track player movement through zones",
    "zones-events": "Zones contain events",
    "events-questions": "Events record question responses",
    "questions-events": "Questions are answered in events",
    "questions-campaigns": "Questions are part of campaigns",
    "campaigns-questions": "Campaigns contain questions",
}


@dataclass
class LearningConfig:
    """Configuration for a learning run."""
    output_dir: Path = field(default_factory=lambda: Path("data") / "self-learning")
    validate_queries: bool = True
    sample_size: int = 10
    collections: Optional[List[str]] = field(default_factory=lambda: list(DEFAULT_COLLECTIONS))
    max_time_ms: int = 10000
    skip_large_collections: bool = False
    max_query_retries: int = 2
    retry_time_increment_ms: int = 5000
    fallback_max_time_ms: int = 5000

    # Profiling
    profile_sample_size: int = 20
    random_sample: bool = False
    large_collection_threshold: int = 100000
    large_collections: List[str] = field(default_factory=lambda: ["events", "players"])
    ignored_keys: List[str] = field(default_factory=lambda: ["__v"])

    # Relationship discovery
    known_relationships: List[Dict[str, Any]] = field(
        default_factory=lambda: [dict(r) for r in DEFAULT_KNOWN_RELATIONSHIPS]
    )
    relationship_descriptions: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_RELATIONSHIP_DESCRIPTIONS)
    )
    context_field: str = "context"

    # Persistence
    keep_snapshots: int = 3
    # Fixed run id; None means a fresh timestamp per run
    run_id: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.output_dir, str):
            self.output_dir = Path(self.output_dir)

    def resolve_run_id(self) -> str:
        """Run id for a new run: the configured one, or a timestamp taken now."""
        return self.run_id or datetime.now().strftime("%Y%m%d_%H%M%S_%f")

    def summary_dict(self) -> Dict[str, Any]:
        """Knobs recorded alongside the run summary."""
        return {
            "sampleSize": self.sample_size,
            "maxTimeMS": self.max_time_ms,
            "skipLargeCollections": self.skip_large_collections,
            "maxQueryRetries": self.max_query_retries,
        }


@dataclass
class RunSummary:
    """Aggregate counters for one learning run."""
    collections: int = 0
    relationships: int = 0
    multi_level_relationships: int = 0
    query_patterns: int = 0
    questions: int = 0
    validated_questions: int = 0
    successful_queries: int = 0
    failed_queries: int = 0
    timeout_queries: int = 0
    optimized_queries: int = 0
    fallback_queries: int = 0
    skipped_queries: int = 0
    validation_failures: int = 0
    profiling_errors: int = 0
    validation_enabled: bool = True
    duration_seconds: float = 0.0
    run_id: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    config: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "collections": self.collections,
            "relationships": self.relationships,
            "multiLevelRelationships": self.multi_level_relationships,
            "queryPatterns": self.query_patterns,
            "questions": self.questions,
            "validatedQuestions": self.validated_questions,
            "successfulQueries": self.successful_queries,
            "failedQueries": self.failed_queries,
            "timeoutQueries": self.timeout_queries,
            "optimizedQueries": self.optimized_queries,
            "fallbackQueries": self.fallback_queries,
            "skippedQueries": self.skipped_queries,
            "validationFailures": self.validation_failures,
            "profilingErrors": self.profiling_errors,
            "validationEnabled": self.validation_enabled,
            "durationSeconds": self.duration_seconds,
            "runId": self.run_id,
            "timestamp": self.timestamp,
            "config": self.config,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RunSummary:
        """Create from dictionary."""
        return cls(
            collections=data.get("collections", 0),
            relationships=data.get("relationships", 0),
            multi_level_relationships=data.get("multiLevelRelationships", 0),
            query_patterns=data.get("queryPatterns", 0),
            questions=data.get("questions", 0),
            validated_questions=data.get("validatedQuestions", 0),
            successful_queries=data.get("successfulQueries", 0),
            failed_queries=data.get("failedQueries", 0),
            timeout_queries=data.get("timeoutQueries", 0),
            optimized_queries=data.get("optimizedQueries", 0),
            fallback_queries=data.get("fallbackQueries", 0),
            skipped_queries=data.get("skippedQueries", 0),
            validation_failures=data.get("validationFailures", 0),
            profiling_errors=data.get("profilingErrors", 0),
            validation_enabled=data.get("validationEnabled", True),
            duration_seconds=data.get("durationSeconds", 0.0),
            run_id=data.get("runId"),
            timestamp=data.get("timestamp", ""),
            config=data.get("config", {}),
        )


@dataclass
class LearningSnapshot:
    """Everything one run produces; persisted and read back as a unit."""
    schema: Dict[str, CollectionProfile] = field(default_factory=dict)
    relationships: List[AnyRelationship] = field(default_factory=list)
    patterns: List[QueryPattern] = field(default_factory=list)
    questions: List[Question] = field(default_factory=list)
    summary: Optional[RunSummary] = None

    @property
    def direct_relationships(self) -> List[Relationship]:
        return [r for r in self.relationships if isinstance(r, Relationship)]

    @property
    def multi_level_relationships(self) -> List[MultiLevelRelationship]:
        return [r for r in self.relationships if isinstance(r, MultiLevelRelationship)]

    def patterns_by_id(self) -> Dict[str, QueryPattern]:
        return {p.id: p for p in self.patterns}
