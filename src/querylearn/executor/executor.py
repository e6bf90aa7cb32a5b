"""
Query Executor - Runs query templates against the store.

Each execution:
1. Substitutes bound parameters into the template
2. Rewrites joins against large collections into sampled, bounded joins
3. Runs the operation with a time budget
4. On a timeout, runs a simplified fallback with its own budget
"""

from __future__ import annotations

import copy
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from querylearn.errors import QueryTimeoutError
from querylearn.models import (
    CollectionProfile,
    LearningConfig,
    QueryPattern,
    StoreOperation,
)
from querylearn.patterns.generator import bounded_lookup
from querylearn.patterns.params import resolve_parameters, substitute_parameters
from querylearn.store.base import DocumentStore

logger = logging.getLogger(__name__)

OPTIMIZED_LIMIT = 20
DEFAULT_LIMIT = 100
PER_DOCUMENT_LIMIT = 100
FALLBACK_SAMPLE = 20

Query = Union[Dict[str, Any], List[Dict[str, Any]]]


@dataclass
class ExecutionResult:
    """Outcome of one execution, including any fallback."""
    success: bool
    collection: str
    operation: StoreOperation
    results: List[Dict[str, Any]] = field(default_factory=list)
    execution_time_ms: float = 0.0
    optimized: bool = False
    fallback: bool = False
    timed_out: bool = False
    error: Optional[str] = None
    original_error: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.results)


def lookup_outputs(pipeline: List[Dict[str, Any]]) -> List[str]:
    """Names of the fields written by $lookup stages."""
    return [stage["$lookup"].get("as", "") for stage in pipeline if "$lookup" in stage]


def references_any(node: Any, names: List[str]) -> bool:
    """Whether any key or string value inside ``node`` refers to one of ``names``."""
    def refers(text: str) -> bool:
        text = text.lstrip("$")
        return any(text == n or text.startswith(f"{n}.") for n in names if n)

    if isinstance(node, dict):
        return any(refers(k) or references_any(v, names) for k, v in node.items())
    if isinstance(node, list):
        return any(references_any(v, names) for v in node)
    if isinstance(node, str):
        return refers(node)
    return False


def strip_lookups(pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop $lookup stages and every stage that reads a lookup output."""
    outputs = lookup_outputs(pipeline)
    return [
        stage for stage in pipeline
        if "$lookup" not in stage and not references_any(stage, outputs)
    ]


class QueryExecutor:
    """
    Executes queries with a time budget, rewrite and fallback.

    Which collections are large comes from the profiler's size classes.
    """

    def __init__(
        self,
        store: DocumentStore,
        large_collections: Optional[Set[str]] = None,
        counts: Optional[Dict[str, int]] = None,
        fallback_max_time_ms: int = 5000,
        per_document_limit: int = PER_DOCUMENT_LIMIT,
    ):
        """
        Initialize the executor.

        Args:
            store: Document store to run against
            large_collections: Collections classified large
            counts: Collection name -> document count
            fallback_max_time_ms: Time budget for the fallback query
            per_document_limit: Related documents fetched per joined document
        """
        self.store = store
        self.large_collections = set(large_collections or [])
        self.counts = dict(counts or {})
        self.fallback_max_time_ms = fallback_max_time_ms
        self.per_document_limit = per_document_limit

    @classmethod
    def from_profiles(
        cls,
        store: DocumentStore,
        profiles: Dict[str, CollectionProfile],
        config: Optional[LearningConfig] = None,
    ) -> QueryExecutor:
        config = config or LearningConfig()
        return cls(
            store,
            large_collections={name for name, p in profiles.items() if p.is_large},
            counts={name: p.count for name, p in profiles.items()},
            fallback_max_time_ms=config.fallback_max_time_ms,
        )

    def is_large(self, collection: Optional[str]) -> bool:
        return collection in self.large_collections

    def execute_pattern(
        self,
        pattern: QueryPattern,
        parameters: Optional[Dict[str, Any]] = None,
        max_time_ms: int = 5000,
    ) -> ExecutionResult:
        """
        Execute a pattern with bound parameters.

        Args:
            pattern: Query pattern
            parameters: Values for the pattern's placeholders
            max_time_ms: Time budget for the main attempt

        Returns:
            ExecutionResult; never raises
        """
        try:
            query = substitute_parameters(pattern.query, resolve_parameters(pattern, parameters))
        except Exception as e:
            logger.warning(f"Error preparing pattern {pattern.id}: {e}")
            return ExecutionResult(
                success=False,
                collection=pattern.collection,
                operation=pattern.operation,
                error=str(e),
            )

        limit = OPTIMIZED_LIMIT if pattern.optimized else DEFAULT_LIMIT
        result = self.execute(query, pattern.collection, pattern.operation, limit, max_time_ms)
        result.optimized = result.optimized or pattern.optimized
        return result

    def execute(
        self,
        query: Query,
        collection: str,
        operation: Union[StoreOperation, str] = StoreOperation.FIND,
        limit: int = DEFAULT_LIMIT,
        max_time_ms: int = 5000,
    ) -> ExecutionResult:
        """
        Execute a concrete query.

        Args:
            query: Filter dict or pipeline
            collection: Collection name
            operation: Store operation
            limit: Maximum results
            max_time_ms: Time budget

        Returns:
            ExecutionResult; a timeout triggers the fallback instead of failing
        """
        operation = StoreOperation(operation)
        preview = json.dumps(query, default=str)
        logger.debug(
            f"Executing {operation.value} on {collection}: "
            f"{preview[:200]}{'...' if len(preview) > 200 else ''}"
        )

        start = time.perf_counter()
        try:
            results, optimized = self._run(query, collection, operation, limit, max_time_ms)
            elapsed = (time.perf_counter() - start) * 1000
            logger.debug(f"Query returned {len(results)} results in {elapsed:.0f}ms")
            return ExecutionResult(
                success=True,
                collection=collection,
                operation=operation,
                results=results,
                execution_time_ms=elapsed,
                optimized=optimized,
            )

        except QueryTimeoutError as e:
            logger.info(f"Query on {collection} timed out - attempting fallback strategy")
            return self._fallback(query, collection, operation, limit, e)

        except Exception as e:
            logger.warning(f"Error executing query on {collection}: {e}")
            return ExecutionResult(
                success=False,
                collection=collection,
                operation=operation,
                execution_time_ms=(time.perf_counter() - start) * 1000,
                error=str(e),
            )

    def optimize_pipeline(self, pipeline: List[Dict[str, Any]], limit: int) -> Tuple[List[Dict[str, Any]], bool]:
        """
        Bound every join against a large collection.

        Unbounded joins become per-document limited joins, a $sample is put
        in front unless the pipeline already samples, and the pipeline ends
        in $limit.

        Returns:
            Tuple of (new pipeline, whether anything was rewritten)
        """
        stages = copy.deepcopy(pipeline)
        rewritten = False

        for i, stage in enumerate(stages):
            lookup = stage.get("$lookup")
            if not lookup or not self.is_large(lookup.get("from")):
                continue

            if "pipeline" in lookup:
                if not any("$limit" in s for s in lookup["pipeline"]):
                    lookup["pipeline"].append({"$limit": self.per_document_limit})
                    rewritten = True
                continue

            stages[i] = bounded_lookup(
                lookup["from"],
                lookup["localField"],
                lookup["foreignField"],
                lookup["as"],
                self.per_document_limit,
            )
            rewritten = True
            logger.debug(f"Bounded join against large collection: {lookup['from']}")

        if rewritten:
            if not any("$sample" in s for s in stages):
                stages.insert(0, {"$sample": {"size": min(limit, FALLBACK_SAMPLE)}})
            if "$limit" not in stages[-1]:
                stages.append({"$limit": limit})
        elif not any("$limit" in s for s in stages):
            stages.append({"$limit": limit})

        return stages, rewritten

    def _run(
        self,
        query: Query,
        collection: str,
        operation: StoreOperation,
        limit: int,
        max_time_ms: int,
    ) -> Tuple[List[Dict[str, Any]], bool]:
        if operation == StoreOperation.FIND:
            return self.store.find(collection, query, limit=limit, max_time_ms=max_time_ms), False

        if operation == StoreOperation.AGGREGATE:
            pipeline = query if isinstance(query, list) else [query]
            pipeline, rewritten = self.optimize_pipeline(pipeline, limit)
            return self.store.aggregate(collection, pipeline, max_time_ms=max_time_ms), rewritten

        if operation == StoreOperation.COUNT:
            return [{"count": self.store.count(collection, query, max_time_ms=max_time_ms)}], False

        if operation == StoreOperation.DISTINCT:
            values = self.store.distinct(
                collection, query["field"], query.get("filter") or {}, max_time_ms=max_time_ms
            )
            return [{"value": v} for v in values], False

        raise ValueError(f"Unsupported operation: {operation}")

    def _fallback(
        self,
        query: Query,
        collection: str,
        operation: StoreOperation,
        limit: int,
        error: QueryTimeoutError,
    ) -> ExecutionResult:
        start = time.perf_counter()
        budget = self.fallback_max_time_ms

        try:
            if operation == StoreOperation.AGGREGATE:
                pipeline = query if isinstance(query, list) else [query]
                large_joins = [
                    stage["$lookup"]["from"] for stage in pipeline
                    if "$lookup" in stage and self.is_large(stage["$lookup"].get("from"))
                ]

                if large_joins and all(self._is_smaller(collection, other) for other in large_joins):
                    results = self.store.find(collection, {}, limit=limit, max_time_ms=budget)
                    self._annotate(results, large_joins)
                else:
                    omitted = [stage["$lookup"].get("from") for stage in pipeline if "$lookup" in stage]
                    stages = [
                        s for s in strip_lookups(pipeline)
                        if "$sample" not in s and "$limit" not in s
                    ]
                    fallback_pipeline = (
                        [{"$sample": {"size": min(limit, FALLBACK_SAMPLE)}}]
                        + stages
                        + [{"$limit": limit}]
                    )
                    results = self.store.aggregate(collection, fallback_pipeline, max_time_ms=budget)
                    if omitted:
                        self._annotate(results, omitted)
            else:
                results = self.store.find(collection, {}, limit=limit, max_time_ms=budget)

        except Exception as fallback_error:
            logger.warning(f"Fallback query on {collection} also failed: {fallback_error}")
            return ExecutionResult(
                success=False,
                collection=collection,
                operation=operation,
                execution_time_ms=(time.perf_counter() - start) * 1000,
                timed_out=True,
                error=f"Original query timed out and fallback also failed: {fallback_error}",
                original_error=str(error),
            )

        return ExecutionResult(
            success=True,
            collection=collection,
            operation=operation,
            results=results,
            execution_time_ms=(time.perf_counter() - start) * 1000,
            fallback=True,
            timed_out=True,
            original_error=str(error),
        )

    def _is_smaller(self, collection: str, other: str) -> bool:
        if not self.is_large(collection):
            return True
        return self.counts.get(collection, 0) < self.counts.get(other, 0)

    @staticmethod
    def _annotate(results: List[Dict[str, Any]], omitted: List[str]) -> None:
        names = ", ".join(sorted(set(n for n in omitted if n)))
        note = f"This result does not include related {names} due to query timeout"
        for row in results:
            if isinstance(row, dict):
                row["fallback_note"] = note
