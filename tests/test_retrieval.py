"""
Tests for the knowledge base and its match cache.

Tests word-overlap similarity, question matching, direct lookups, query
building, reloads and cache behaviour.
"""

import time

import pytest

from querylearn.artifacts import ArtifactStore
from querylearn.models import (
    Category,
    CollectionProfile,
    FieldRef,
    LearningSnapshot,
    MultiLevelRelationship,
    ParameterSpec,
    ParamRef,
    PatternType,
    Question,
    QueryPattern,
    Relationship,
    RunSummary,
    StoreOperation,
)
from querylearn.retrieval import KnowledgeBase, MatchCache, jaccard_similarity, tokenize
from querylearn.retrieval.cache import MISS, cache_key


def build_snapshot(question_text="How many players are there?"):
    count = QueryPattern(
        id="count_players",
        type=PatternType.COUNT,
        collection="players",
        operation=StoreOperation.COUNT,
        query={},
        description="Count players",
        category=Category.ANALYTICS,
    )
    by_id = QueryPattern(
        id="find_items_by_id",
        type=PatternType.FIND,
        collection="items",
        operation=StoreOperation.FIND,
        query={"_id": ParamRef("id_value")},
        description="Find items by ID",
        parameters=[ParameterSpec(name="id_value", type="objectId")],
    )
    players_events = Relationship(
        source=FieldRef("players", "playerId"),
        target=FieldRef("events", "playerId"),
        description="Players generate events through their actions",
    )
    events_items = Relationship(source=FieldRef("events", "context.itemId"), target=FieldRef("items", "_id"))

    questions = [
        Question(
            id="question_count_players_1",
            text=question_text,
            intent="count",
            collections=["players"],
            pattern_id=count.id,
            pattern=count,
            category=Category.ANALYTICS,
        ),
        Question(
            id="question_find_items_by_id_1",
            text='Find the item with ID "000000000000000000000001".',
            intent="find_by_id",
            collections=["items"],
            pattern_id=by_id.id,
            pattern=by_id,
            parameters={"id_value": "000000000000000000000001"},
        ),
        Question(
            id="question_relationship_players_events_1",
            text="What is the relationship between players and events?",
            intent="describe_relationship",
            collections=["players", "events"],
            category=Category.RELATIONSHIP,
        ),
    ]
    return LearningSnapshot(
        schema={
            "players": CollectionProfile(name="players", count=4),
            "items": CollectionProfile(name="items", count=3),
        },
        relationships=[
            players_events,
            events_items,
            MultiLevelRelationship(first=players_events, second=events_items),
        ],
        patterns=[count, by_id],
        questions=questions,
        summary=RunSummary(collections=2, run_id="r1"),
    )


@pytest.fixture
def data_dir(tmp_path):
    root = tmp_path / "self-learning"
    ArtifactStore(root).save(build_snapshot(), "r1")
    return root


@pytest.fixture
def kb(data_dir):
    knowledge_base = KnowledgeBase(data_dir)
    assert knowledge_base.load()
    return knowledge_base


class TestSimilarity:
    """Tests for tokenization and Jaccard similarity."""

    def test_tokenize(self):
        """Test lower-casing, punctuation removal and short-word filtering."""
        assert tokenize("How many Players are there?") == {"how", "many", "players", "are", "there"}
        assert tokenize("a to be") == set()
        assert tokenize(None) == set()

    def test_jaccard(self):
        """Test intersection over union."""
        assert jaccard_similarity({"a", "b"}, {"a", "b"}) == 1.0
        assert jaccard_similarity({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
        assert jaccard_similarity({"a"}, {"b"}) == 0.0

    def test_empty_sets_score_zero(self):
        """Test two empty token sets do not divide by zero."""
        assert jaccard_similarity(set(), set()) == 0.0


class TestMatching:
    """Tests for free-text matching."""

    def test_identical_text_matches_fully(self, kb):
        """Test a stored question matches itself with confidence 1.0."""
        match = kb.find_similar_question("How many players are there?", threshold=1.0)

        assert match is not None
        assert match.confidence == 1.0
        assert match.question.id == "question_count_players_1"
        assert match.pattern.id == "count_players"

    def test_case_and_punctuation_insensitive(self, kb):
        """Test matching ignores case and punctuation."""
        match = kb.find_similar_question("HOW MANY PLAYERS ARE THERE")
        assert match.confidence == 1.0

    def test_disjoint_text_no_match(self, kb):
        """Test unrelated text finds nothing at any positive threshold."""
        assert kb.find_similar_question("zebra umbrella volcano", threshold=0.01) is None

    def test_below_threshold(self, kb):
        """Test partial overlap below the threshold is rejected."""
        assert kb.find_similar_question("how many zebras", threshold=0.7) is None
        assert kb.find_similar_question("how many zebras", threshold=0.1) is not None

    def test_empty_query(self, kb):
        """Test an empty query never matches."""
        assert kb.find_similar_question("") is None

    def test_pattern_required_for_query_pattern(self, kb):
        """Test an unbound best match yields no query pattern."""
        text = "What is the relationship between players and events?"

        assert kb.find_similar_question(text).pattern is None
        assert kb.get_query_pattern_for_query(text) is None

    def test_build_query_substitutes_parameters(self, kb):
        """Test the matched question's parameters are bound into the query."""
        built = kb.build_query('Find the item with ID "000000000000000000000001".')

        assert built["collection"] == "items"
        assert built["operation"] == "find"
        assert str(built["query"]["_id"]) == "000000000000000000000001"
        assert built["confidence"] == 1.0
        assert built["explanation"] == "Query generated based on pattern: Find items by ID"

    def test_build_query_without_match(self, kb):
        """Test no match builds nothing."""
        assert kb.build_query("zebra umbrella volcano") is None

    def test_match_to_dict(self, kb):
        """Test the serialized match carries the pattern and question."""
        data = kb.find_similar_question("How many players are there?").to_dict()
        assert data["pattern"]["id"] == "count_players"
        assert data["matchedQuestion"]["id"] == "question_count_players_1"


class TestLookups:
    """Tests for direct lookups."""

    def test_schema(self, kb):
        """Test schema lookups by collection."""
        assert kb.get_collection_schema("players").count == 4
        assert kb.get_collection_schema("missing") is None
        assert set(kb.get_all_schema_info()) == {"players", "items"}

    def test_relationship_either_direction(self, kb):
        """Test direct relationships are found regardless of argument order."""
        forward = kb.get_relationship("players", "events")
        backward = kb.get_relationship("events", "players")

        assert forward is not None
        assert forward is backward
        assert kb.get_relationship("players", "items") is None

    def test_collection_relationships(self, kb):
        """Test both kinds are returned for an involved collection."""
        assert len(kb.get_collection_relationships("players")) == 2
        assert len(kb.get_collection_relationships("items")) == 2
        assert len(kb.get_all_relationships()) == 3

    def test_patterns(self, kb):
        """Test pattern lookups."""
        assert [p.id for p in kb.get_collection_query_patterns("items")] == ["find_items_by_id"]
        assert kb.get_query_pattern("count_players").collection == "players"
        assert kb.get_query_pattern("nope") is None
        assert len(kb.get_all_query_patterns()) == 2

    def test_questions(self, kb):
        """Test question lookups by collection, intent and category."""
        assert len(kb.get_collection_questions("players")) == 2
        assert [q.id for q in kb.get_questions_by_intent("count")] == ["question_count_players_1"]
        assert len(kb.get_questions_by_category("relationship")) == 1
        assert len(kb.get_all_questions()) == 3

    def test_summary(self, kb):
        """Test the run summary is exposed."""
        assert kb.get_summary().run_id == "r1"

    def test_enhance_query(self, kb):
        """Test schema and relationship details are attached."""
        enhanced = kb.enhance_query({"collection": "players", "relatedCollection": "events"})

        assert enhanced["schemaInfo"]["name"] == "players"
        assert enhanced["relationshipInfo"]["description"] == "Players generate events through their actions"


class TestReload:
    """Tests for loading and reloading."""

    def test_missing_data(self, tmp_path):
        """Test loading without published data keeps an empty snapshot."""
        kb = KnowledgeBase(tmp_path / "nothing")

        assert not kb.load()
        assert kb.get_all_questions() == []
        assert kb.find_similar_question("How many players are there?") is None

    def test_reload_swaps_snapshot_and_clears_cache(self, data_dir):
        """Test a newer run replaces the old one and cached matches are dropped."""
        cache = MatchCache()
        kb = KnowledgeBase(data_dir, cache=cache)
        kb.load()

        assert kb.find_similar_question("How many players are there?") is not None
        assert len(cache) == 1

        ArtifactStore(data_dir).save(build_snapshot("Count every gamer registered"), "r2")
        assert kb.load()

        assert len(cache) == 0
        assert kb.find_similar_question("How many players are there?") is None
        assert kb.find_similar_question("count every gamer registered").confidence == 1.0

    def test_failed_reload_keeps_previous(self, kb, data_dir):
        """Test a reload that finds nothing keeps serving the old snapshot."""
        for path in data_dir.rglob("*"):
            if path.is_file():
                path.unlink()

        assert not kb.load()
        assert kb.get_query_pattern("count_players") is not None

    def test_background_refresh(self, data_dir):
        """Test the refresh timer reloads until stopped."""
        kb = KnowledgeBase(data_dir, refresh_interval=0.05)
        kb.start()
        try:
            first = kb.last_loaded
            deadline = time.time() + 2
            while kb.last_loaded == first and time.time() < deadline:
                time.sleep(0.01)
            assert kb.last_loaded != first
        finally:
            kb.stop()


class TestMatchCache:
    """Tests for the match cache."""

    def test_hit_and_miss(self):
        """Test stored values are returned and absent keys miss."""
        cache = MatchCache(capacity=2)
        cache.put("a", 1)

        assert cache.get("a") == 1
        assert cache.get("b") is MISS

    def test_none_is_cacheable(self):
        """Test a cached no-match is distinguishable from a miss."""
        cache = MatchCache()
        cache.put("a", None)
        assert cache.get("a") is None

    def test_lru_eviction(self):
        """Test the least recently used entry is evicted first."""
        cache = MatchCache(capacity=2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")
        cache.put("c", 3)

        assert cache.get("b") is MISS
        assert cache.get("a") == 1
        assert cache.get("c") == 3

    def test_expiry(self):
        """Test entries older than the TTL miss."""
        cache = MatchCache(ttl_seconds=0)
        cache.put("a", 1)
        assert cache.get("a") is MISS

    def test_zero_capacity_disables(self):
        """Test a zero-capacity cache stores nothing."""
        cache = MatchCache(capacity=0)
        cache.put("a", 1)
        assert len(cache) == 0

    def test_cache_key_normalizes(self):
        """Test whitespace and case do not split cache entries."""
        assert cache_key("  How  many\tplayers ", 0.7) == cache_key("how many players", 0.7)
        assert cache_key("how many players", 0.7) != cache_key("how many players", 0.5)
