"""
Question Generator - Pairs query patterns with natural-language questions.

A pure string-templating pass: every pattern gets a few paraphrases of its
intent, each bound to the pattern by id plus any example parameters. Direct
relationships that are not already well covered get description questions,
and the authored game questions are added when their collections exist.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from querylearn.models import (
    Category,
    CollectionProfile,
    Complexity,
    MultiLevelRelationship,
    PatternType,
    Question,
    QueryPattern,
    Relationship,
)
from querylearn.patterns.generator import singular
from querylearn.questions.domain import (
    COMPOSITE_QUESTIONS,
    GAME_QUESTIONS,
    SPECIFIC_MULTI_LEVEL_QUESTIONS,
)

logger = logging.getLogger(__name__)

# Relationship questions are skipped once this many questions mention both sides
RELATIONSHIP_COVERAGE = 3


class QuestionGenerator:
    """Generates questions for a pattern catalog."""

    def __init__(self, include_game_questions: bool = True):
        self.include_game_questions = include_game_questions
        self._questions: List[Question] = []
        self._ids: Set[str] = set()

    def generate(
        self,
        profiles: Dict[str, CollectionProfile],
        patterns: List[QueryPattern],
        relationships: Optional[List[Relationship]] = None,
        multi_level: Optional[List[MultiLevelRelationship]] = None,
    ) -> List[Question]:
        """
        Generate questions.

        Args:
            profiles: Collection name -> CollectionProfile
            patterns: Pattern catalog
            relationships: Direct relationships
            multi_level: Multi-level relationships

        Returns:
            List of Question in generation order
        """
        logger.info("Generating questions...")
        self._questions = []
        self._ids = set()

        multi_level_patterns = []
        for pattern in patterns:
            if pattern.type == PatternType.MULTI_LOOKUP:
                multi_level_patterns.append(pattern)
                continue
            self.pattern_questions(pattern)

        for rel in relationships or []:
            self.relationship_questions(rel)

        by_id = {p.id: p for p in multi_level_patterns}
        for chain in multi_level or []:
            self.multi_level_questions(chain, by_id)

        if self.include_game_questions:
            self.game_questions(set(profiles))

        logger.info(f"Generated {len(self._questions)} questions")
        return list(self._questions)

    # ------------------------------------------------------------------
    # Pattern questions
    # ------------------------------------------------------------------

    def pattern_questions(self, pattern: QueryPattern) -> None:
        pid = pattern.id
        if pattern.type == PatternType.FIND:
            if pid.startswith("find_all_"):
                self._list_all(pattern)
            elif pid.endswith("_by_id"):
                self._find_by_id(pattern)
            elif "_by_" in pid:
                self._find_by_field(pattern)
        elif pattern.type == PatternType.COUNT:
            self._emit(pattern, [
                f"How many {pattern.collection} are there?",
                f"What is the total number of {pattern.collection}?",
            ], "count")
        elif pattern.type == PatternType.AGGREGATE:
            self._field_aggregate(pattern)
        elif pattern.type == PatternType.LOOKUP:
            self._lookup(pattern)
        elif pattern.type == PatternType.COMPLEX:
            for n, (text, intent, params) in enumerate(COMPOSITE_QUESTIONS.get(pid, []), start=1):
                self._add(Question(
                    id=f"question_{pid}_{n}",
                    text=text,
                    intent=intent,
                    collections=list(pattern.collections),
                    pattern_id=pid,
                    pattern=pattern,
                    parameters=dict(params),
                    complexity=pattern.complexity,
                    category=pattern.category,
                    parameterized=bool(params),
                ))

    def _list_all(self, pattern: QueryPattern) -> None:
        c = pattern.collection
        self._emit(pattern, [
            f"What are all the {c} in the system?",
            f"Show me all {c}.",
            f"List all {c}.",
        ], "list_all")

    def _find_by_id(self, pattern: QueryPattern) -> None:
        spec = pattern.get_parameter("id_value")
        if spec is None:
            return
        id_value = spec.example if spec.example is not None else "example_id"
        name = singular(pattern.collection)
        self._emit(pattern, [
            f'Find the {name} with ID "{id_value}".',
            f'Get details for {name} with ID "{id_value}".',
        ], "find_by_id", parameters={"id_value": id_value})

    def _find_by_field(self, pattern: QueryPattern) -> None:
        spec = pattern.get_parameter("field_value")
        if spec is None or not pattern.field_info:
            return
        c = pattern.collection
        field_name = pattern.field_info["name"]
        value = spec.example if spec.example not in (None, "") else "example_value"

        texts = [
            f'Find {c} where {field_name} is "{value}".',
            f'Show me {c} with {field_name} equal to "{value}".',
        ]
        if field_name.endswith(("Id", "_id")):
            entity = field_name.rsplit(".", 1)[-1]
            entity = entity[:-3] if entity.endswith("_id") else entity[:-2]
            texts.append(f'Which {c} are related to {entity} "{value}"?')

        self._emit(pattern, texts, "find_by_field", parameters={"field_value": value})

    def _field_aggregate(self, pattern: QueryPattern) -> None:
        if not pattern.field_info:
            return
        c = pattern.collection
        f = pattern.field_info["name"]
        pid = pattern.id

        if pid.startswith("avg_"):
            self._emit(pattern, [
                f"What is the average {f} in {c}?",
                f"Calculate the average {f} across all {c}.",
            ], "calculate_average")
        elif pid.startswith("sum_"):
            self._emit(pattern, [
                f"What is the total sum of {f} in {c}?",
                f"Calculate the total {f} across all {c}.",
            ], "calculate_sum")
        elif pid.startswith("min_max_"):
            self._emit(pattern, [
                f"What are the minimum and maximum {f} values in {c}?",
                f"What is the range of {f} in {c}?",
            ], "find_min_max")
        elif pid.startswith("group_by_date_"):
            self._emit(pattern, [
                f"How many {c} are there per day based on {f}?",
                f"Show the distribution of {c} over time by {f}.",
            ], "group_by_date")

    def _lookup(self, pattern: QueryPattern) -> None:
        if len(pattern.collections) < 2:
            return
        s, t = pattern.collections[0], pattern.collections[1]
        one = singular(s)

        if pattern.id.startswith("lookup_"):
            self._emit(pattern, [
                f"Show {s} with their related {t}.",
                f"Find {s} and include their {t} information.",
                f"Which {t} are associated with each {one}?",
            ], "find_related")
        elif pattern.id.startswith("count_related_"):
            self._emit(pattern, [
                f"How many {t} are associated with each {one}?",
                f"Count the number of {t} for each {one}.",
                f"Which {one} has the most {t}?",
            ], "count_related")

    # ------------------------------------------------------------------
    # Relationship questions
    # ------------------------------------------------------------------

    def relationship_questions(self, rel: Relationship) -> None:
        s, t = rel.source.collection, rel.target.collection
        covered = sum(
            1 for q in self._questions if s in q.collections and t in q.collections
        )
        if covered >= RELATIONSHIP_COVERAGE:
            return

        base = f"question_relationship_{s}_{t}"
        self._add(Question(
            id=f"{base}_1",
            text=f"What is the relationship between {s} and {t}?",
            intent="describe_relationship",
            collections=[s, t],
            relationship=rel.to_dict(),
            category=Category.RELATIONSHIP,
        ))
        if rel.description:
            self._add(Question(
                id=f"{base}_2",
                text=f"How do {s} relate to {t}?",
                intent="describe_relationship",
                collections=[s, t],
                relationship=rel.to_dict(),
                category=Category.RELATIONSHIP,
                answer=rel.description,
            ))

    # ------------------------------------------------------------------
    # Multi-level questions
    # ------------------------------------------------------------------

    def multi_level_questions(self, chain: MultiLevelRelationship, patterns: Dict[str, QueryPattern]) -> None:
        a, b, c = chain.collections
        suffix = f"{a}_{b}_{c}"
        one = singular(a)

        paraphrases = {
            "lookup": [
                f"Show {a} with their related {b} and {c}.",
                f"Find {a} and include both their {b} and {c} information.",
                f"Which {c} are connected to {a} through {b}?",
            ],
            "count": [
                f"How many {c} are associated with each {one} through {b}?",
                f"Count the number of {c} for each {one} through their {b}.",
                f"Which {one} has the most {c} through {b}?",
            ],
            "aggregate": [
                f"Analyze the relationship between {a}, {b}, and {c}.",
                f"Summarize how {a} connect to {c} through {b}.",
            ],
        }

        for kind, texts in paraphrases.items():
            pattern = patterns.get(f"multi_level_{kind}_{suffix}")
            if pattern is None:
                continue
            category = Category.ANALYTICS if kind == "aggregate" else Category.RELATIONSHIP
            self._emit(pattern, texts, f"multi_level_{kind}", category=category)

        specific = SPECIFIC_MULTI_LEVEL_QUESTIONS.get(chain.key, [])
        for n, (text, intent, kind) in enumerate(specific, start=1):
            pattern = patterns.get(f"multi_level_{kind}_{suffix}")
            if pattern is None:
                continue
            self._add(Question(
                id=f"question_multi_level_specific_{suffix}_{n}",
                text=text,
                intent=intent,
                collections=[a, b, c],
                pattern_id=pattern.id,
                pattern=pattern,
                complexity=Complexity.ADVANCED,
                category=Category.RELATIONSHIP,
            ))

    # ------------------------------------------------------------------
    # Game questions
    # ------------------------------------------------------------------

    def game_questions(self, collections: Set[str]) -> None:
        for game in GAME_QUESTIONS:
            if not set(game.requires) <= collections:
                continue
            self._add(Question(
                id=game.id,
                text=game.text,
                intent=game.intent,
                collections=list(game.collections),
                complexity=game.complexity,
                category=game.category,
            ))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit(
        self,
        pattern: QueryPattern,
        texts: Iterable[str],
        intent: str,
        parameters: Optional[Dict[str, Any]] = None,
        category: Optional[Category] = None,
    ) -> None:
        for n, text in enumerate(texts, start=1):
            self._add(Question(
                id=f"question_{pattern.id}_{n}",
                text=text,
                intent=intent,
                collections=list(pattern.collections),
                pattern_id=pattern.id,
                pattern=pattern,
                parameters=dict(parameters or {}),
                complexity=pattern.complexity,
                category=category or pattern.category,
                parameterized=bool(parameters),
            ))

    def _add(self, question: Question) -> None:
        if question.id in self._ids:
            logger.debug(f"Duplicate question id suppressed: {question.id}")
            return
        self._ids.add(question.id)
        self._questions.append(question)
