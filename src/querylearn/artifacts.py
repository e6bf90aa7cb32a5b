"""
Artifact persistence for learning snapshots.

Layout under the output root:

    runs/<run_id>/schema-info.json
    runs/<run_id>/relationships.json
    runs/<run_id>/query-patterns.json
    runs/<run_id>/validated-questions.json
    runs/<run_id>/summary.json
    LATEST                      (name of the published run)

A run is staged in a temporary directory, renamed into place, and only then
does LATEST move to it, so readers never see a half-written snapshot. Older
layouts that kept the five files directly in the root are still readable.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, List, Optional

from querylearn.errors import PersistenceError
from querylearn.models import (
    CollectionProfile,
    LearningSnapshot,
    Question,
    QueryPattern,
    RunSummary,
    relationship_from_dict,
)
from querylearn.utils.json_encoder import CustomJSONEncoder

logger = logging.getLogger(__name__)

SCHEMA_FILE = "schema-info.json"
RELATIONSHIPS_FILE = "relationships.json"
PATTERNS_FILE = "query-patterns.json"
QUESTIONS_FILE = "validated-questions.json"
SUMMARY_FILE = "summary.json"
ARTIFACT_FILES = [SCHEMA_FILE, RELATIONSHIPS_FILE, PATTERNS_FILE, QUESTIONS_FILE, SUMMARY_FILE]

LATEST_POINTER = "LATEST"
RUNS_DIR = "runs"
STAGING_PREFIX = ".staging-"


class ArtifactStore:
    """Reads and writes learning snapshots under one root directory."""

    def __init__(self, root: Path, keep_snapshots: int = 3):
        """
        Initialize the store.

        Args:
            root: Output root directory
            keep_snapshots: Published runs to retain, the newest included
        """
        self.root = Path(root)
        self.keep_snapshots = max(1, keep_snapshots)

    @property
    def runs_dir(self) -> Path:
        return self.root / RUNS_DIR

    def save(self, snapshot: LearningSnapshot, run_id: str) -> Path:
        """
        Write a snapshot and publish it as the latest run.

        Files are written into a staging directory under ``runs/`` and
        renamed into place before LATEST moves. The published run is never
        written to: re-saving its id lands in ``<run_id>.<n>`` instead.

        Args:
            snapshot: Snapshot to persist
            run_id: Run identifier, used as the directory name

        Returns:
            Path to the run directory

        Raises:
            PersistenceError: If any file cannot be written or published
        """
        logger.info(f"Saving learning artifacts for run {run_id}")

        try:
            contents = {
                SCHEMA_FILE: {name: p.to_dict() for name, p in snapshot.schema.items()},
                RELATIONSHIPS_FILE: [r.to_dict() for r in snapshot.relationships],
                PATTERNS_FILE: [p.to_dict() for p in snapshot.patterns],
                QUESTIONS_FILE: [q.to_dict() for q in snapshot.questions],
                SUMMARY_FILE: snapshot.summary.to_dict() if snapshot.summary else {},
            }
            payloads = {
                filename: json.dumps(data, cls=CustomJSONEncoder, indent=2)
                for filename, data in contents.items()
            }
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to serialize artifacts for run {run_id}: {e}") from e

        staging = None
        run_dir = None
        try:
            self.runs_dir.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=f"{STAGING_PREFIX}{run_id}-", dir=self.runs_dir))
            os.chmod(staging, 0o755)
            for filename, text in payloads.items():
                with open(staging / filename, "w") as f:
                    f.write(text)
                    f.flush()
                    os.fsync(f.fileno())

            run_dir = self.runs_dir / self._unpublished_name(run_id)
            if run_dir.exists():
                shutil.rmtree(run_dir)
            os.replace(staging, run_dir)
            staging = None
            self._publish(run_dir.name)
        except OSError as e:
            raise PersistenceError(f"Failed to save artifacts for run {run_id}: {e}") from e
        finally:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)

        self.prune(keep=run_dir.name)
        logger.info(f"Published run {run_dir.name}")
        return run_dir

    def _unpublished_name(self, run_id: str) -> str:
        published = self.latest_run_id()
        name = run_id
        n = 1
        while name == published:
            name = f"{run_id}.{n}"
            n += 1
        return name

    def _publish(self, run_id: str) -> None:
        pointer = self.root / LATEST_POINTER
        tmp = self.root / f"{LATEST_POINTER}.tmp"
        with open(tmp, "w") as f:
            f.write(run_id)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, pointer)

    def prune(self, keep: Optional[str] = None) -> List[str]:
        """
        Delete old run directories beyond ``keep_snapshots``.

        Args:
            keep: Run id that must survive regardless of age

        Returns:
            Removed run ids
        """
        if not self.runs_dir.exists():
            return []

        runs = sorted(
            p.name for p in self.runs_dir.iterdir()
            if p.is_dir() and not p.name.startswith(STAGING_PREFIX)
        )
        retained = set(runs[-self.keep_snapshots:])
        if keep:
            retained.add(keep)

        removed = []
        for name in runs:
            if name in retained:
                continue
            try:
                shutil.rmtree(self.runs_dir / name)
                removed.append(name)
            except OSError as e:
                logger.warning(f"Could not remove old run {name}: {e}")

        if removed:
            logger.debug(f"Pruned runs: {', '.join(removed)}")
        return removed

    def latest_run_id(self) -> Optional[str]:
        pointer = self.root / LATEST_POINTER
        if not pointer.exists():
            return None
        return pointer.read_text().strip() or None

    def latest_dir(self) -> Optional[Path]:
        """Directory holding the published snapshot, or None when nothing was written."""
        run_id = self.latest_run_id()
        if run_id:
            run_dir = self.runs_dir / run_id
            if run_dir.is_dir():
                return run_dir
            logger.warning(f"LATEST points to missing run {run_id}")

        # Flat layout from older versions
        if any((self.root / name).exists() for name in ARTIFACT_FILES):
            return self.root
        return None

    def exists(self) -> bool:
        return self.latest_dir() is not None

    def load(self) -> LearningSnapshot:
        """
        Load the published snapshot.

        Unreadable individual files are logged and left empty.

        Returns:
            LearningSnapshot

        Raises:
            PersistenceError: If no snapshot has been published
        """
        source = self.latest_dir()
        if source is None:
            raise PersistenceError(f"No learning snapshot found in {self.root}")

        logger.info(f"Loading learning artifacts from {source}")

        schema = self._read(source, SCHEMA_FILE, {}, lambda d: {
            name: CollectionProfile.from_dict(p) for name, p in d.items()
        })
        relationships = self._read(source, RELATIONSHIPS_FILE, [], lambda d: [
            relationship_from_dict(r) for r in d
        ])
        patterns = self._read(source, PATTERNS_FILE, [], lambda d: [
            QueryPattern.from_dict(p) for p in d
        ])
        by_id = {p.id: p for p in patterns}
        questions = self._read(source, QUESTIONS_FILE, [], lambda d: [
            Question.from_dict(q, by_id) for q in d
        ])
        summary = self._read(source, SUMMARY_FILE, None, lambda d: (
            RunSummary.from_dict(d) if d else None
        ))

        return LearningSnapshot(
            schema=schema,
            relationships=relationships,
            patterns=patterns,
            questions=questions,
            summary=summary,
        )

    @staticmethod
    def _read(source: Path, filename: str, default: Any, parse: Callable[[Any], Any]) -> Any:
        path = source / filename
        if not path.exists():
            logger.warning(f"Artifact not found: {path}")
            return default
        try:
            with open(path) as f:
                data = json.load(f)
            return parse(data)
        except Exception as e:
            logger.warning(f"Could not load {filename}: {e}")
            return default
