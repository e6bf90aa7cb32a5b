"""
Self-learning run orchestration.

One run:
1. Profiles the configured collections
2. Discovers direct and multi-level relationships
3. Generates query patterns
4. Generates questions for the patterns
5. Optionally executes every bound question, grouped by collection
6. Persists the snapshot and returns it with a RunSummary
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Dict, List, Optional

from tqdm import tqdm

from querylearn.artifacts import ArtifactStore
from querylearn.discovery import RelationshipDiscoverer
from querylearn.executor import ExecutionResult, QueryExecutor, validate_results
from querylearn.models import (
    CollectionProfile,
    ExecutionRecord,
    LearningConfig,
    LearningSnapshot,
    Question,
    RunSummary,
)
from querylearn.patterns import QueryPatternGenerator
from querylearn.profiler import SchemaProfiler
from querylearn.questions import QuestionGenerator
from querylearn.store.base import DocumentStore

logger = logging.getLogger(__name__)

UNGROUPED = "other"


class SelfLearningRun:
    """
    Runs the learning pipeline once against a document store.

    Failures scoped to a collection, a relationship candidate or a question
    are recorded in the snapshot. Only persistence failures are raised.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: Optional[LearningConfig] = None,
        artifact_store: Optional[ArtifactStore] = None,
        progress: bool = True,
    ):
        """
        Initialize the run.

        Args:
            store: Document store to learn from
            config: Run configuration
            artifact_store: Where the snapshot is written; defaults to config.output_dir
            progress: Show a progress bar while executing questions
        """
        self.store = store
        self.config = config or LearningConfig()
        self.artifact_store = artifact_store or ArtifactStore(
            self.config.output_dir, keep_snapshots=self.config.keep_snapshots
        )
        self.progress = progress
        self.summary = RunSummary()

    def run(self) -> LearningSnapshot:
        """
        Execute the full pipeline and persist the result.

        Returns:
            The published LearningSnapshot

        Raises:
            PersistenceError: If the snapshot cannot be written
        """
        config = self.config
        started = time.perf_counter()
        run_id = config.resolve_run_id()
        self.summary = RunSummary(
            run_id=run_id,
            validation_enabled=config.validate_queries,
            config=config.summary_dict(),
        )
        logger.info(f"Starting self-learning run {run_id}")

        # Step 1: Profile collections
        logger.info("Step 1: Profiling collections...")
        profiler = SchemaProfiler.from_config(self.store, config)
        profiles = profiler.profile_all(config.collections)

        # Step 2: Discover relationships
        logger.info("Step 2: Discovering relationships...")
        discoverer = RelationshipDiscoverer.from_config(self.store, config)
        relationships, multi_level = discoverer.discover(profiles)

        # Step 3: Generate query patterns
        logger.info("Step 3: Generating query patterns...")
        patterns = QueryPatternGenerator().generate(profiles, relationships, multi_level)

        # Step 4: Generate questions
        logger.info("Step 4: Generating questions...")
        questions = QuestionGenerator().generate(profiles, patterns, relationships, multi_level)

        # Step 5: Validate
        if config.validate_queries:
            logger.info("Step 5: Validating questions against the store...")
            questions = self.validate(questions, profiles)
        else:
            logger.info("Step 5: Validation disabled, skipping")

        summary = self.summary
        summary.collections = len(profiles)
        summary.relationships = len(relationships)
        summary.multi_level_relationships = len(multi_level)
        summary.query_patterns = len(patterns)
        summary.questions = len(questions)
        summary.profiling_errors = sum(1 for p in profiles.values() if p.error)
        summary.duration_seconds = round(time.perf_counter() - started, 3)

        snapshot = LearningSnapshot(
            schema=profiles,
            relationships=[*relationships, *multi_level],
            patterns=patterns,
            questions=questions,
            summary=summary,
        )

        # Step 6: Persist
        logger.info("Step 6: Saving results...")
        self.artifact_store.save(snapshot, run_id)

        logger.info(
            f"Self-learning run complete: {summary.successful_queries} successful, "
            f"{summary.failed_queries} failed, {summary.timeout_queries} timed out"
        )
        return snapshot

    @staticmethod
    def group_by_collection(questions: List[Question]) -> Dict[str, List[Question]]:
        """Group questions by primary collection, preserving first-seen order."""
        groups: Dict[str, List[Question]] = OrderedDict()
        for question in questions:
            groups.setdefault(question.primary_collection or UNGROUPED, []).append(question)
        return groups

    def is_large(self, collection: str, profiles: Dict[str, CollectionProfile]) -> bool:
        profile = profiles.get(collection)
        if profile is not None:
            return profile.is_large
        return collection in self.config.large_collections

    def validate(
        self,
        questions: List[Question],
        profiles: Dict[str, CollectionProfile],
    ) -> List[Question]:
        """
        Execute bound questions group by group.

        Args:
            questions: Generated questions
            profiles: Collection profiles, used for size classes

        Returns:
            Questions in group order, each bound one carrying an ExecutionRecord
        """
        executor = QueryExecutor.from_profiles(self.store, profiles, self.config)
        groups = self.group_by_collection(questions)
        validated: List[Question] = []

        for collection, group in tqdm(
            groups.items(), desc="Validating collections", disable=not self.progress
        ):
            logger.info(f"Processing {len(group)} questions for collection: {collection}")

            if self.config.skip_large_collections and self.is_large(collection, profiles):
                logger.info(f"Skipping large collection: {collection}")
                for question in group:
                    if question.pattern is not None:
                        question.execution = ExecutionRecord(
                            success=False,
                            skipped=True,
                            reason=f"Skipped large collection: {collection}",
                        )
                        self.summary.skipped_queries += 1
                    validated.append(question)
                continue

            for question in group:
                if question.pattern is not None:
                    try:
                        question.execution = self.execute_question(executor, question)
                    except Exception as e:
                        logger.warning(f"Error executing query for question \"{question.text}\": {e}")
                        question.execution = ExecutionRecord(success=False, error=str(e))
                        self.summary.failed_queries += 1
                validated.append(question)

        return validated

    def execute_question(self, executor: QueryExecutor, question: Question) -> ExecutionRecord:
        """
        Execute one question with the retry policy and record the outcome.

        Args:
            executor: Executor bound to the run's store
            question: Question with a resolved pattern

        Returns:
            ExecutionRecord for the question
        """
        config = self.config
        logger.debug(f"Testing question: \"{question.text}\"")

        attempt = 0
        result: Optional[ExecutionResult] = None
        while attempt <= config.max_query_retries:
            budget = config.max_time_ms + attempt * config.retry_time_increment_ms
            result = executor.execute_pattern(question.pattern, question.parameters, budget)
            attempt += 1
            if result.success or not result.timed_out:
                break
            if attempt <= config.max_query_retries:
                logger.info(f"Query timed out, retrying ({attempt}/{config.max_query_retries})...")

        summary = self.summary
        if not result.success:
            logger.info(f"Query failed: {result.error}")
            summary.failed_queries += 1
            if result.timed_out:
                summary.timeout_queries += 1
            return ExecutionRecord(
                success=False,
                error=result.error,
                timed_out=result.timed_out,
                attempts=attempt,
                original_error=result.original_error,
                execution_time_ms=result.execution_time_ms,
            )

        logger.debug(f"Query returned {result.count} results in {result.execution_time_ms:.0f}ms")
        summary.successful_queries += 1
        if result.optimized:
            summary.optimized_queries += 1
        if result.fallback:
            summary.fallback_queries += 1
            logger.info(f"Used fallback strategy due to: {result.original_error}")

        validation = validate_results(result.results, question.pattern.expected_shape)
        if validation.valid:
            summary.validated_questions += 1
        else:
            summary.validation_failures += 1
            logger.debug(f"Validation failed for {question.id}: {validation.reason}")

        return ExecutionRecord(
            success=True,
            result_count=result.count,
            sample_results=result.results[: config.sample_size],
            execution_time_ms=result.execution_time_ms,
            optimized=result.optimized,
            fallback=result.fallback,
            timed_out=result.timed_out,
            attempts=attempt,
            original_error=result.original_error,
            validation=validation,
        )


def run_self_learning(
    store: DocumentStore,
    config: Optional[LearningConfig] = None,
    artifact_store: Optional[ArtifactStore] = None,
    progress: bool = True,
) -> LearningSnapshot:
    """
    Run the learning pipeline once.

    Args:
        store: Document store to learn from
        config: Run configuration
        artifact_store: Snapshot destination
        progress: Show a progress bar while executing questions

    Returns:
        The published LearningSnapshot
    """
    return SelfLearningRun(store, config, artifact_store, progress=progress).run()
