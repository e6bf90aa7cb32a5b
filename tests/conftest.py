"""
Shared fixtures: an in-memory DocumentStore and small game datasets.

FakeStore evaluates the subset of filter and pipeline semantics the learning
pipeline emits. Lookups against collections listed in ``slow_collections``
raise QueryTimeoutError when the call's budget is below ``slow_budget_ms``,
which lets tests drive the timeout and fallback paths deterministically.
"""

import copy
import json
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId

from querylearn.errors import QueryTimeoutError, StoreError
from querylearn.models import LearningConfig
from querylearn.store.base import DocumentStore

MISSING = object()


def get_path(doc: Any, path: str) -> Any:
    value = doc
    for part in path.split("."):
        if isinstance(value, list):
            collected = [get_path(v, part) for v in value if isinstance(v, dict)]
            value = [v for v in collected if v is not MISSING]
            continue
        if not isinstance(value, dict) or part not in value:
            return MISSING
        value = value[part]
    return value


def set_path(doc: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def _compare(a: Any, b: Any) -> Optional[int]:
    try:
        return (a > b) - (a < b)
    except TypeError:
        return None


def match_condition(value: Any, cond: Any) -> bool:
    if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
        for op, arg in cond.items():
            if op == "$exists":
                if (value is not MISSING) != bool(arg):
                    return False
            elif op == "$ne":
                if value is not MISSING and value == arg:
                    return False
                if arg is None and value is None:
                    return False
            elif op == "$eq":
                if value != arg:
                    return False
            elif op in ("$gt", "$gte", "$lt", "$lte"):
                if value is MISSING or value is None:
                    return False
                result = _compare(value, arg)
                if result is None:
                    return False
                if op == "$gt" and not result > 0:
                    return False
                if op == "$gte" and not result >= 0:
                    return False
                if op == "$lt" and not result < 0:
                    return False
                if op == "$lte" and not result <= 0:
                    return False
            elif op == "$in":
                if value not in arg:
                    return False
            elif op == "$regex":
                flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
                if not isinstance(value, str) or not re.search(arg, value, flags):
                    return False
            elif op == "$options":
                continue
            else:
                raise StoreError(f"Unsupported filter operator: {op}")
        return True

    if value is MISSING:
        return cond is None
    if isinstance(value, list) and not isinstance(cond, list):
        return cond in value
    return value == cond


def matches(doc: Dict[str, Any], filter: Optional[Dict[str, Any]], variables=None) -> bool:
    for key, cond in (filter or {}).items():
        if key == "$and":
            if not all(matches(doc, f, variables) for f in cond):
                return False
        elif key == "$or":
            if not any(matches(doc, f, variables) for f in cond):
                return False
        elif key == "$expr":
            if not evaluate(cond, doc, variables or {}):
                return False
        elif not match_condition(get_path(doc, key), cond):
            return False
    return True


def evaluate(expr: Any, doc: Dict[str, Any], variables: Dict[str, Any]) -> Any:
    if isinstance(expr, str):
        if expr.startswith("$$"):
            name, _, rest = expr[2:].partition(".")
            value = variables.get(name)
            if rest:
                value = get_path(value, rest)
            return None if value is MISSING else value
        if expr.startswith("$"):
            value = get_path(doc, expr[1:])
            return None if value is MISSING else value
        return expr

    if isinstance(expr, list):
        return [evaluate(e, doc, variables) for e in expr]

    if isinstance(expr, dict) and len(expr) == 1:
        op, arg = next(iter(expr.items()))
        if op.startswith("$"):
            return _operator(op, arg, doc, variables)

    if isinstance(expr, dict):
        return {k: evaluate(v, doc, variables) for k, v in expr.items()}

    return expr


def _operator(op: str, arg: Any, doc: Dict[str, Any], variables: Dict[str, Any]) -> Any:
    if op == "$literal":
        return arg
    values = evaluate(arg, doc, variables)
    if op == "$eq":
        return values[0] == values[1]
    if op == "$size":
        return len(values or [])
    if op == "$toLower":
        return str(values).lower() if values is not None else ""
    if op == "$toString":
        return str(values) if values is not None else None
    if op == "$ifNull":
        return values[0] if values[0] is not None else values[1]
    if op == "$arrayElemAt":
        array, index = values
        return array[index] if array and len(array) > abs(index) else None
    if op == "$cond":
        condition, yes, no = values
        return yes if condition else no
    if op == "$divide":
        return values[0] / values[1] if values[1] else None
    if op == "$dateToString":
        date = values.get("date")
        return date.strftime(values.get("format", "%Y-%m-%d")) if isinstance(date, datetime) else None
    raise StoreError(f"Unsupported expression operator: {op}")


def _sort_key(value: Any):
    if value is MISSING or value is None:
        return (0, "")
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (1, value)
    return (2, str(value))


class FakeStore(DocumentStore):
    """In-memory DocumentStore over plain lists of documents."""

    def __init__(
        self,
        collections: Dict[str, List[Dict[str, Any]]],
        slow_collections: Optional[List[str]] = None,
        slow_budget_ms: int = 1000,
        failing_collections: Optional[List[str]] = None,
    ):
        self.collections = {name: list(docs) for name, docs in collections.items()}
        self.slow_collections = set(slow_collections or [])
        self.slow_budget_ms = slow_budget_ms
        self.failing_collections = set(failing_collections or [])
        self.calls: List[tuple] = []

    def _docs(self, collection: str) -> List[Dict[str, Any]]:
        if collection in self.failing_collections:
            raise StoreError(f"{collection} is unavailable")
        return self.collections.get(collection, [])

    def list_collections(self) -> List[str]:
        return sorted(self.collections)

    def sample(self, collection: str, size: int, random: bool = False) -> List[Dict[str, Any]]:
        self.calls.append(("sample", collection, size))
        return copy.deepcopy(self._docs(collection)[:size])

    def count(self, collection, filter=None, max_time_ms=None) -> int:
        self.calls.append(("count", collection, filter, max_time_ms))
        return sum(1 for d in self._docs(collection) if matches(d, filter))

    def find_one(self, collection, filter):
        self.calls.append(("find_one", collection, filter))
        for doc in self._docs(collection):
            if matches(doc, filter):
                return copy.deepcopy(doc)
        return None

    def find(self, collection, filter=None, limit=0, max_time_ms=None):
        self.calls.append(("find", collection, filter, max_time_ms))
        found = [copy.deepcopy(d) for d in self._docs(collection) if matches(d, filter)]
        return found[:limit] if limit else found

    def distinct(self, collection, field, filter=None, max_time_ms=None):
        self.calls.append(("distinct", collection, field, max_time_ms))
        values = []
        for doc in self._docs(collection):
            if matches(doc, filter):
                value = get_path(doc, field)
                if value is not MISSING and value not in values:
                    values.append(value)
        return values

    def aggregate(self, collection, pipeline, max_time_ms=None):
        self.calls.append(("aggregate", collection, pipeline, max_time_ms))
        for stage in pipeline:
            lookup = stage.get("$lookup")
            if (
                lookup
                and lookup.get("from") in self.slow_collections
                and max_time_ms is not None
                and max_time_ms < self.slow_budget_ms
            ):
                raise QueryTimeoutError(f"operation exceeded time limit on {lookup['from']}")
        docs = copy.deepcopy(self._docs(collection))
        return self._run(docs, pipeline, {})

    def _run(self, docs, pipeline, variables):
        for stage in pipeline:
            (op, arg), = stage.items()
            docs = self._stage(op, arg, docs, variables)
        return docs

    def _stage(self, op, arg, docs, variables):
        if op == "$match":
            return [d for d in docs if matches(d, arg, variables)]
        if op in ("$limit", "$sample"):
            size = arg if op == "$limit" else arg["size"]
            return docs[:size]
        if op == "$skip":
            return docs[arg:]
        if op == "$lookup":
            return [self._lookup(d, arg) for d in docs]
        if op == "$unwind":
            return self._unwind(docs, arg)
        if op == "$group":
            return self._group(docs, arg, variables)
        if op == "$project":
            return [self._project(d, arg, variables) for d in docs]
        if op in ("$addFields", "$set"):
            out = []
            for d in docs:
                d = dict(d)
                for k, v in arg.items():
                    set_path(d, k, evaluate(v, d, variables))
                out.append(d)
            return out
        if op == "$sort":
            out = list(docs)
            for key, direction in reversed(list(arg.items())):
                out.sort(key=lambda d: _sort_key(get_path(d, key)), reverse=direction < 0)
            return out
        if op == "$count":
            return [{arg: len(docs)}]
        raise StoreError(f"Unsupported pipeline stage: {op}")

    def _lookup(self, doc, spec):
        foreign = self.collections.get(spec["from"], [])
        if "pipeline" in spec:
            variables = {k: evaluate(v, doc, {}) for k, v in spec.get("let", {}).items()}
            joined = self._run(copy.deepcopy(foreign), spec["pipeline"], variables)
        else:
            local = get_path(doc, spec["localField"])
            local_values = local if isinstance(local, list) else [local]
            joined = [
                copy.deepcopy(f) for f in foreign
                if get_path(f, spec["foreignField"]) in local_values
            ]
        doc = dict(doc)
        set_path(doc, spec["as"], joined)
        return doc

    @staticmethod
    def _unwind(docs, arg):
        path = arg if isinstance(arg, str) else arg["path"]
        preserve = isinstance(arg, dict) and arg.get("preserveNullAndEmptyArrays", False)
        field = path[1:]
        out = []
        for d in docs:
            value = get_path(d, field)
            if isinstance(value, list) and value:
                for item in value:
                    copy_doc = dict(d)
                    set_path(copy_doc, field, item)
                    out.append(copy_doc)
            elif preserve:
                copy_doc = dict(d)
                if isinstance(value, list):
                    copy_doc.pop(field, None)
                out.append(copy_doc)
        return out

    @staticmethod
    def _group(docs, spec, variables):
        groups: Dict[str, Dict[str, Any]] = {}
        for d in docs:
            group_id = evaluate(spec["_id"], d, variables)
            key = json.dumps(group_id, sort_keys=True, default=str)
            group = groups.setdefault(key, {"_id": group_id, "_values": {}})
            for name, acc in spec.items():
                if name == "_id":
                    continue
                (acc_op, acc_arg), = acc.items()
                group["_values"].setdefault(name, (acc_op, []))[1].append(evaluate(acc_arg, d, variables))

        out = []
        for group in groups.values():
            row = {"_id": group["_id"]}
            for name, (acc_op, values) in group["_values"].items():
                numbers = [v for v in values if isinstance(v, (int, float)) and not isinstance(v, bool)]
                if acc_op == "$sum":
                    row[name] = sum(numbers)
                elif acc_op == "$avg":
                    row[name] = sum(numbers) / len(numbers) if numbers else None
                elif acc_op == "$min":
                    row[name] = min(numbers) if numbers else None
                elif acc_op == "$max":
                    row[name] = max(numbers) if numbers else None
                elif acc_op == "$first":
                    row[name] = values[0] if values else None
                elif acc_op == "$push":
                    row[name] = values
                else:
                    raise StoreError(f"Unsupported accumulator: {acc_op}")
            out.append(row)
        return out

    @staticmethod
    def _project(doc, spec, variables):
        out: Dict[str, Any] = {}
        if spec.get("_id", 1) not in (0, False) and "_id" in doc:
            out["_id"] = doc["_id"]
        for key, value in spec.items():
            if key == "_id":
                if value not in (0, False, 1, True):
                    out["_id"] = evaluate(value, doc, variables)
                continue
            if value in (1, True):
                found = get_path(doc, key)
                if found is not MISSING:
                    set_path(out, key, found)
            elif value in (0, False):
                continue
            else:
                out[key] = evaluate(value, doc, variables)
        return out


# ---------------------------------------------------------------------------
# Datasets
# ---------------------------------------------------------------------------

def make_game_dataset(players: int = 4, events_per_player: int = 3) -> Dict[str, List[Dict[str, Any]]]:
    """Small related game dataset with deterministic ids."""
    start = datetime(2024, 1, 1)
    items = [{"_id": ObjectId(f"{i + 1:024x}"), "name": f"Item {i}", "price": 10 * (i + 1)} for i in range(3)]
    questions = [
        {"_id": ObjectId(f"{i + 101:024x}"), "text": f"Question {i}?", "difficulty": "easy"}
        for i in range(2)
    ]
    player_docs = [
        {
            "_id": ObjectId(f"{i + 201:024x}"),
            "playerId": f"P{i + 1:03d}",
            "name": f"Player {i}",
            "level": i + 1,
            "createdAt": start + timedelta(days=i),
        }
        for i in range(players)
    ]

    events = []
    n = 0
    for p_index, player in enumerate(player_docs):
        for e in range(events_per_player):
            n += 1
            if e % 2 == 0:
                context = {"itemId": items[(p_index + e) % len(items)]["_id"]}
                event_type = "item"
            else:
                context = {"questionId": str(questions[e % len(questions)]["_id"])}
                event_type = "question"
            events.append({
                "_id": ObjectId(f"{n + 1000:024x}"),
                "playerId": player["playerId"],
                "type": event_type,
                "timestamp": start + timedelta(hours=n),
                "correct": e % 3 == 0,
                "context": context,
            })

    return {"players": player_docs, "events": events, "items": items, "questions": questions}


@pytest.fixture
def game_data():
    return make_game_dataset()


@pytest.fixture
def game_store(game_data):
    return FakeStore(game_data)


@pytest.fixture
def config(tmp_path):
    return LearningConfig(
        output_dir=tmp_path / "self-learning",
        collections=["players", "events", "items", "questions"],
        run_id="20240101_000000",
    )
