"""
Tests for the data models.

Tests serialization of profiles, relationships, patterns and questions, and
the ordering and invariants the pipeline relies on.
"""

import pytest

from querylearn.models import (
    Category,
    CollectionProfile,
    Confidence,
    ExecutionRecord,
    FieldProfile,
    FieldRef,
    FieldType,
    LearningConfig,
    LearningSnapshot,
    MultiLevelRelationship,
    ParamRef,
    ParameterSpec,
    PatternType,
    Question,
    QueryPattern,
    Relationship,
    ResultShape,
    RunSummary,
    SizeClass,
    StoreOperation,
    ValidationResult,
    decode_template,
    encode_template,
    relationship_from_dict,
)


def make_rel(source, target, confidence=Confidence.HIGH, source_field="xId", target_field="_id"):
    return Relationship(
        source=FieldRef(source, source_field),
        target=FieldRef(target, target_field),
        confidence=confidence,
        verified=True,
    )


class TestConfidence:
    """Tests for confidence tiers."""

    @pytest.mark.parametrize(
        "match_count, expected",
        [(0, Confidence.LOW), (10, Confidence.LOW), (11, Confidence.MEDIUM),
         (100, Confidence.MEDIUM), (101, Confidence.HIGH), (150, Confidence.HIGH)],
    )
    def test_from_match_count(self, match_count, expected):
        """Test tier boundaries."""
        assert Confidence.from_match_count(match_count) == expected

    def test_ordering(self):
        """Test tiers order by evidence strength."""
        assert Confidence.LOW < Confidence.MEDIUM < Confidence.HIGH
        assert min(Confidence.HIGH, Confidence.LOW) == Confidence.LOW


class TestCollectionProfile:
    """Tests for collection profiles."""

    def test_round_trip(self):
        """Test to_dict/from_dict preserves fields and size class."""
        profile = CollectionProfile(
            name="items",
            fields={
                "_id": FieldProfile(path="_id", type=FieldType.OBJECT_ID, is_id=True, examples=["abc"]),
                "value": FieldProfile(
                    path="value",
                    type=FieldType.NUMBER,
                    alternative_types=[FieldType.STRING],
                    nullable=True,
                ),
            },
            count=3,
            size_class=SizeClass.LARGE,
        )

        restored = CollectionProfile.from_dict(profile.to_dict())

        assert restored.name == "items"
        assert restored.is_large
        assert restored.get_field("_id").is_id
        assert restored.get_field("value").types == [FieldType.NUMBER, FieldType.STRING]
        assert restored.get_field("value").nullable

    def test_error_only_serialized_when_set(self):
        """Test the error key is omitted for healthy profiles."""
        assert "error" not in CollectionProfile(name="a").to_dict()
        assert CollectionProfile(name="a", error="boom").to_dict()["error"] == "boom"


class TestRelationship:
    """Tests for direct and multi-level relationships."""

    def test_self_relationship_rejected(self):
        """Test source and target must differ."""
        with pytest.raises(ValueError):
            make_rel("players", "players")

    def test_involves(self):
        """Test either side counts as involved."""
        rel = make_rel("events", "items")
        assert rel.involves("events")
        assert rel.involves("items")
        assert not rel.involves("players")

    def test_chain_must_share_middle(self):
        """Test hops must meet at the middle collection."""
        with pytest.raises(ValueError):
            MultiLevelRelationship(first=make_rel("a", "b"), second=make_rel("c", "d"))

    def test_chain_must_not_return_to_source(self):
        """Test A -> B -> A is rejected."""
        with pytest.raises(ValueError):
            MultiLevelRelationship(first=make_rel("a", "b"), second=make_rel("b", "a"))

    def test_chain_confidence_is_weakest_hop(self):
        """Test the chain takes the minimum hop confidence."""
        chain = MultiLevelRelationship(
            first=make_rel("players", "events", Confidence.HIGH),
            second=make_rel("events", "items", Confidence.MEDIUM),
        )

        assert chain.collections == ["players", "events", "items"]
        assert chain.confidence == Confidence.MEDIUM
        assert chain.score == pytest.approx(0.7)
        assert "through events" in chain.description

    def test_relationship_from_dict_dispatches_on_type(self):
        """Test both kinds restore from their serialized form."""
        direct = make_rel("events", "items")
        chain = MultiLevelRelationship(first=make_rel("players", "events"), second=direct)

        assert isinstance(relationship_from_dict(direct.to_dict()), Relationship)
        restored = relationship_from_dict(chain.to_dict())
        assert isinstance(restored, MultiLevelRelationship)
        assert restored.key == ("players", "events", "items")


class TestQueryPattern:
    """Tests for query patterns and templates."""

    def test_template_encoding(self):
        """Test ParamRef nodes survive JSON encoding."""
        template = {"_id": ParamRef("id_value"), "n": [ParamRef("threshold", 3)]}

        encoded = encode_template(template)

        assert encoded == {"_id": {"$param": "id_value"}, "n": [{"$param": "threshold", "default": 3}]}
        assert decode_template(encoded) == template

    def test_round_trip_keeps_placeholders(self):
        """Test a pattern restored from JSON still carries its ParamRef."""
        pattern = QueryPattern(
            id="find_items_by_id",
            type=PatternType.FIND,
            collection="items",
            operation=StoreOperation.FIND,
            query={"_id": ParamRef("id_value")},
            parameters=[ParameterSpec(name="id_value", type="objectId")],
            expected_shape=ResultShape(required_fields=["_id"]),
        )

        restored = QueryPattern.from_dict(pattern.to_dict())

        assert restored.query == {"_id": ParamRef("id_value")}
        assert restored.get_parameter("id_value").type == "objectId"
        assert restored.expected_shape.required_fields == ["_id"]
        assert restored.collections == ["items"]

    def test_render(self):
        """Test shell-style rendering per operation."""
        pattern = QueryPattern(
            id="count_items",
            type=PatternType.COUNT,
            collection="items",
            operation=StoreOperation.COUNT,
            query={},
        )
        assert pattern.render() == "db.items.countDocuments({})"

    def test_pipeline_wraps_filter(self):
        """Test a filter query is presented as a one-stage pipeline."""
        pattern = QueryPattern(
            id="p", type=PatternType.FIND, collection="c",
            operation=StoreOperation.FIND, query={"a": 1},
        )
        assert pattern.pipeline == [{"a": 1}]


class TestQuestion:
    """Tests for questions."""

    def test_pattern_persisted_by_id(self):
        """Test the pattern is stored as an id and resolved on load."""
        pattern = QueryPattern(
            id="count_items", type=PatternType.COUNT, collection="items",
            operation=StoreOperation.COUNT, query={},
        )
        question = Question(
            id="question_count_items_1",
            text="How many items are there?",
            intent="count",
            collections=["items"],
            pattern_id=pattern.id,
            pattern=pattern,
            execution=ExecutionRecord(success=True, result_count=1, validation=ValidationResult(valid=True)),
        )

        data = question.to_dict()
        assert "pattern" not in data
        assert data["patternId"] == "count_items"

        restored = Question.from_dict(data, {"count_items": pattern})
        assert restored.pattern is pattern
        assert restored.execution.validation.valid
        assert restored.primary_collection == "items"

    def test_unbound_question(self):
        """Test a question without a pattern falls back to its first collection."""
        question = Question.from_dict({
            "id": "q", "text": "t", "intent": "i",
            "collections": ["leaderboards", "players"], "category": "game_analytics",
        })
        assert question.pattern is None
        assert question.primary_collection == "leaderboards"
        assert question.category == Category.GAME_ANALYTICS


class TestRunSummary:
    """Tests for run summaries and configuration."""

    def test_round_trip(self):
        """Test camelCase serialization."""
        summary = RunSummary(collections=4, fallback_queries=2, run_id="r1")
        data = summary.to_dict()

        assert data["fallbackQueries"] == 2
        assert RunSummary.from_dict(data) == summary

    def test_config_defaults(self):
        """Test default run configuration."""
        config = LearningConfig(output_dir="out")

        assert config.run_id is None
        assert config.resolve_run_id()
        assert LearningConfig(run_id="fixed").resolve_run_id() == "fixed"
        assert config.output_dir.name == "out"
        assert config.max_query_retries == 2
        assert "events" in config.large_collections
        assert config.summary_dict()["maxTimeMS"] == 10000

    def test_snapshot_splits_relationships(self):
        """Test direct and multi-level relationships are separable."""
        direct = make_rel("players", "events")
        second = make_rel("events", "items")
        chain = MultiLevelRelationship(first=direct, second=second)
        snapshot = LearningSnapshot(relationships=[direct, second, chain])

        assert snapshot.direct_relationships == [direct, second]
        assert snapshot.multi_level_relationships == [chain]
