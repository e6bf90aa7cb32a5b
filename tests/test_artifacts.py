"""
Tests for artifact persistence.

Tests the run directory layout, the LATEST pointer, pruning, the legacy flat
layout, and tolerance of damaged files.
"""

import json
from datetime import datetime

import pytest
from bson import ObjectId

from querylearn.artifacts import ArtifactStore
from querylearn.errors import PersistenceError
from querylearn.models import (
    CollectionProfile,
    FieldProfile,
    FieldRef,
    FieldType,
    LearningSnapshot,
    MultiLevelRelationship,
    ParamRef,
    PatternType,
    Question,
    QueryPattern,
    Relationship,
    RunSummary,
    StoreOperation,
)


@pytest.fixture
def snapshot():
    oid = ObjectId()
    profile = CollectionProfile(
        name="players",
        fields={"_id": FieldProfile(path="_id", type=FieldType.OBJECT_ID, is_id=True, examples=[oid])},
        count=1,
        sample_data=[{"_id": oid, "createdAt": datetime(2024, 1, 1)}],
    )
    first = Relationship(source=FieldRef("players", "playerId"), target=FieldRef("events", "playerId"))
    second = Relationship(source=FieldRef("events", "context.itemId"), target=FieldRef("items", "_id"))
    pattern = QueryPattern(
        id="find_players_by_id",
        type=PatternType.FIND,
        collection="players",
        operation=StoreOperation.FIND,
        query={"_id": ParamRef("id_value")},
    )
    question = Question(
        id="question_find_players_by_id_1",
        text="Find the player with ID",
        intent="find_by_id",
        collections=["players"],
        pattern_id=pattern.id,
        pattern=pattern,
        parameters={"id_value": str(oid)},
    )
    return LearningSnapshot(
        schema={"players": profile},
        relationships=[first, second, MultiLevelRelationship(first=first, second=second)],
        patterns=[pattern],
        questions=[question],
        summary=RunSummary(collections=1, run_id="r1"),
    )


class TestSave:
    """Tests for writing snapshots."""

    def test_layout_and_pointer(self, tmp_path, snapshot):
        """Test files land in the run directory and LATEST names it."""
        store = ArtifactStore(tmp_path)

        run_dir = store.save(snapshot, "r1")

        assert run_dir == tmp_path / "runs" / "r1"
        assert sorted(p.name for p in run_dir.iterdir()) == [
            "query-patterns.json",
            "relationships.json",
            "schema-info.json",
            "summary.json",
            "validated-questions.json",
        ]
        assert (tmp_path / "LATEST").read_text() == "r1"
        assert not (tmp_path / "LATEST.tmp").exists()

    def test_bson_values_serialized(self, tmp_path, snapshot):
        """Test ObjectId and datetime values are written as strings."""
        ArtifactStore(tmp_path).save(snapshot, "r1")

        schema = json.loads((tmp_path / "runs" / "r1" / "schema-info.json").read_text())
        sample = schema["players"]["sampleData"][0]
        assert isinstance(sample["_id"], str)
        assert sample["createdAt"] == "2024-01-01T00:00:00"

    def test_prune_keeps_newest(self, tmp_path, snapshot):
        """Test only keep_snapshots runs are retained."""
        store = ArtifactStore(tmp_path, keep_snapshots=2)
        for run_id in ["20240101_000000", "20240102_000000", "20240103_000000"]:
            store.save(snapshot, run_id)

        remaining = sorted(p.name for p in (tmp_path / "runs").iterdir())
        assert remaining == ["20240102_000000", "20240103_000000"]
        assert store.latest_run_id() == "20240103_000000"

    def test_prune_never_removes_published_run(self, tmp_path, snapshot):
        """Test the run just published survives even when it sorts oldest."""
        store = ArtifactStore(tmp_path, keep_snapshots=1)
        store.save(snapshot, "b")
        store.save(snapshot, "a")

        assert store.latest_run_id() == "a"
        assert (tmp_path / "runs" / "a").is_dir()

    def test_unwritable_root(self, tmp_path, snapshot):
        """Test write failures raise PersistenceError."""
        blocker = tmp_path / "file"
        blocker.write_text("x")

        with pytest.raises(PersistenceError):
            ArtifactStore(blocker).save(snapshot, "r1")

    def test_failed_resave_keeps_published_run(self, tmp_path, snapshot):
        """Test an unserializable re-save of the published id leaves it intact."""
        store = ArtifactStore(tmp_path)
        store.save(snapshot, "r1")

        snapshot.schema = {"events": CollectionProfile(name="events")}
        snapshot.summary.config = {"bad": object()}
        with pytest.raises(PersistenceError):
            store.save(snapshot, "r1")

        loaded = store.load()
        assert set(loaded.schema) == {"players"}
        assert loaded.summary.run_id == "r1"
        assert [p.name for p in (tmp_path / "runs").iterdir()] == ["r1"]

    def test_write_failure_leaves_no_partial_run(self, tmp_path, snapshot, monkeypatch):
        """Test a disk error midway keeps the old run published and cleans up."""
        store = ArtifactStore(tmp_path)
        store.save(snapshot, "r1")

        def fail(fd):
            raise OSError("disk full")

        monkeypatch.setattr("querylearn.artifacts.os.fsync", fail)
        with pytest.raises(PersistenceError, match="disk full"):
            store.save(snapshot, "r2")

        assert store.latest_run_id() == "r1"
        assert [p.name for p in (tmp_path / "runs").iterdir()] == ["r1"]

    def test_resave_of_published_id_gets_new_directory(self, tmp_path, snapshot):
        """Test the live run directory is never written to."""
        store = ArtifactStore(tmp_path)
        first = store.save(snapshot, "r1")

        snapshot.schema = {"events": CollectionProfile(name="events")}
        second = store.save(snapshot, "r1")

        assert first == tmp_path / "runs" / "r1"
        assert second == tmp_path / "runs" / "r1.1"
        assert store.latest_run_id() == "r1.1"
        assert set(store.load().schema) == {"events"}
        assert json.loads((first / "schema-info.json").read_text()).keys() == {"players"}


class TestLoad:
    """Tests for reading snapshots back."""

    def test_round_trip(self, tmp_path, snapshot):
        """Test a saved snapshot loads with patterns resolved on questions."""
        store = ArtifactStore(tmp_path)
        store.save(snapshot, "r1")

        loaded = store.load()

        assert set(loaded.schema) == {"players"}
        assert len(loaded.direct_relationships) == 2
        assert loaded.multi_level_relationships[0].collections == ["players", "events", "items"]
        assert loaded.patterns[0].query == {"_id": ParamRef("id_value")}
        assert loaded.questions[0].pattern is loaded.patterns[0]
        assert loaded.summary.run_id == "r1"

    def test_nothing_published(self, tmp_path):
        """Test loading an empty root raises."""
        store = ArtifactStore(tmp_path)

        assert not store.exists()
        with pytest.raises(PersistenceError):
            store.load()

    def test_legacy_flat_layout(self, tmp_path, snapshot):
        """Test files written directly under the root are still readable."""
        (tmp_path / "query-patterns.json").write_text(json.dumps([p.to_dict() for p in snapshot.patterns]))
        (tmp_path / "summary.json").write_text(json.dumps({"collections": 7}))

        loaded = ArtifactStore(tmp_path).load()

        assert [p.id for p in loaded.patterns] == ["find_players_by_id"]
        assert loaded.summary.collections == 7
        assert loaded.questions == []

    def test_damaged_file_left_empty(self, tmp_path, snapshot):
        """Test one unreadable file does not prevent loading the others."""
        store = ArtifactStore(tmp_path)
        run_dir = store.save(snapshot, "r1")
        (run_dir / "relationships.json").write_text("{not json")

        loaded = store.load()

        assert loaded.relationships == []
        assert len(loaded.patterns) == 1

    def test_dangling_pointer_falls_back(self, tmp_path):
        """Test a pointer to a missing run with no legacy files means nothing is published."""
        (tmp_path / "LATEST").write_text("gone")
        assert ArtifactStore(tmp_path).latest_dir() is None
