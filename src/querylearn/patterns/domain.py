"""
Domain composite patterns for the game dataset.

These are emitted only when the collections they read exist. Field names
(playerId, context.questionId, timestamp, correct, type) follow the game's
event schema.
"""

from __future__ import annotations

from typing import Any, Dict, List, Set

from querylearn.models import (
    Category,
    Complexity,
    ParameterSpec,
    ParamRef,
    PatternType,
    QueryPattern,
    StoreOperation,
)

PLAY_COUNT_BOUNDARIES = [1, 2, 3, 5, 10, 20, 50, 100, 500, 1000]
DEFAULT_PLAY_THRESHOLD = 3


def _question_details_lookup() -> Dict[str, Any]:
    # Question ids in events are strings of varying case
    return {
        "$lookup": {
            "from": "questions",
            "let": {"qid": {"$toLower": "$questionId"}},
            "pipeline": [
                {"$addFields": {"idLower": {"$toLower": {"$toString": "$_id"}}}},
                {"$match": {"$expr": {"$eq": ["$idLower", "$$qid"]}}},
            ],
            "as": "questionDetails",
        }
    }


def _question_text() -> Dict[str, Any]:
    return {
        "$ifNull": [
            {"$arrayElemAt": ["$questionDetails.text", 0]},
            "Question text not available",
        ]
    }


def _advanced(pattern_id: str, collections: List[str], description: str, pipeline, **kwargs) -> QueryPattern:
    return QueryPattern(
        id=pattern_id,
        type=PatternType.COMPLEX,
        collection="events",
        collections=collections,
        operation=StoreOperation.AGGREGATE,
        query=pipeline,
        description=description,
        complexity=Complexity.ADVANCED,
        category=Category.ANALYTICS,
        **kwargs,
    )


def question_patterns() -> List[QueryPattern]:
    """Attempt and correctness statistics per question."""
    question_link = {
        "source": {"collection": "events", "field": "context.questionId"},
        "target": {"collection": "questions", "field": "_id"},
    }

    avg_attempts = _advanced(
        "avg_attempts_per_question",
        ["events", "questions"],
        "Calculate average attempts per question",
        [
            {"$match": {"type": "question"}},
            {
                "$group": {
                    "_id": {"playerId": "$playerId", "questionId": "$context.questionId"},
                    "count": {"$sum": 1},
                }
            },
            {"$group": {"_id": "$_id.questionId", "avgAttempts": {"$avg": "$count"}}},
            {"$project": {"questionId": "$_id", "avgAttempts": 1, "_id": 0}},
            _question_details_lookup(),
            {"$project": {"questionId": 1, "avgAttempts": 1, "questionText": _question_text()}},
            {"$sort": {"avgAttempts": -1}},
        ],
        relationship_info=question_link,
    )

    correct_rate = _advanced(
        "correct_answer_rate_per_question",
        ["events", "questions"],
        "Calculate correct answer rate per question",
        [
            {"$match": {"type": "question"}},
            {
                "$group": {
                    "_id": "$context.questionId",
                    "totalAttempts": {"$sum": 1},
                    "correctAttempts": {"$sum": {"$cond": [{"$eq": ["$correct", True]}, 1, 0]}},
                }
            },
            {
                "$project": {
                    "questionId": "$_id",
                    "totalAttempts": 1,
                    "correctAttempts": 1,
                    "correctRate": {"$divide": ["$correctAttempts", "$totalAttempts"]},
                    "_id": 0,
                }
            },
            _question_details_lookup(),
            {
                "$project": {
                    "questionId": 1,
                    "totalAttempts": 1,
                    "correctAttempts": 1,
                    "correctRate": 1,
                    "questionText": _question_text(),
                }
            },
            {"$sort": {"correctRate": 1}},
        ],
        relationship_info=question_link,
    )

    return [avg_attempts, correct_rate]


def player_patterns() -> List[QueryPattern]:
    """Activity, play frequency and play count distribution per player."""
    activity = _advanced(
        "player_activity_over_time",
        ["players", "events"],
        "Analyze player activity over time",
        [
            {"$match": {"timestamp": {"$exists": True}}},
            {
                "$group": {
                    "_id": {
                        "playerId": "$playerId",
                        "date": {"$dateToString": {"format": "%Y-%m-%d", "date": "$timestamp"}},
                    },
                    "count": {"$sum": 1},
                }
            },
            {"$sort": {"_id.date": 1}},
            {
                "$group": {
                    "_id": "$_id.playerId",
                    "activity": {"$push": {"date": "$_id.date", "count": "$count"}},
                    "totalEvents": {"$sum": "$count"},
                }
            },
            {"$sort": {"totalEvents": -1}},
            {"$limit": 10},
        ],
        relationship_info={
            "source": {"collection": "events", "field": "playerId"},
            "target": {"collection": "players", "field": "playerId"},
        },
    )

    frequency = _advanced(
        "player_play_frequency",
        ["events"],
        "Calculate percentage of players who played more than a specific number of times",
        [
            {"$group": {"_id": "$playerId", "playCount": {"$sum": 1}}},
            {
                "$addFields": {
                    "playedMoreThanNTimes": {
                        "$gt": ["$playCount", ParamRef("threshold", DEFAULT_PLAY_THRESHOLD)]
                    }
                }
            },
            {
                "$group": {
                    "_id": None,
                    "totalPlayers": {"$sum": 1},
                    "playersMoreThanNTimes": {
                        "$sum": {"$cond": [{"$eq": ["$playedMoreThanNTimes", True]}, 1, 0]}
                    },
                }
            },
            {
                "$project": {
                    "_id": 0,
                    "totalPlayers": 1,
                    "playersMoreThanNTimes": 1,
                    "percentage": {
                        "$multiply": [{"$divide": ["$playersMoreThanNTimes", "$totalPlayers"]}, 100]
                    },
                }
            },
        ],
        parameters=[
            ParameterSpec(
                name="threshold",
                description="The threshold number of plays",
                default=DEFAULT_PLAY_THRESHOLD,
                type="number",
            )
        ],
    )

    distribution = _advanced(
        "player_play_count_distribution",
        ["events"],
        "Calculate distribution of player play counts",
        [
            {"$group": {"_id": "$playerId", "playCount": {"$sum": 1}}},
            {
                "$bucket": {
                    "groupBy": "$playCount",
                    "boundaries": list(PLAY_COUNT_BOUNDARIES),
                    "default": "1000+",
                    "output": {"count": {"$sum": 1}, "players": {"$push": "$_id"}},
                }
            },
            {"$addFields": {"playerCount": {"$size": "$players"}}},
            {"$group": {"_id": None, "totalPlayers": {"$sum": "$count"}, "buckets": {"$push": "$$ROOT"}}},
            {"$unwind": "$buckets"},
            {
                "$project": {
                    "_id": "$buckets._id",
                    "range": "$buckets._id",
                    "count": "$buckets.count",
                    "percentage": {"$multiply": [{"$divide": ["$buckets.count", "$totalPlayers"]}, 100]},
                }
            },
            {"$sort": {"range": 1}},
        ],
    )

    return [activity, frequency, distribution]


def generate_domain_patterns(collections: Set[str]) -> List[QueryPattern]:
    """
    Domain patterns whose collections are all present.

    Args:
        collections: Names of profiled collections

    Returns:
        List of QueryPattern
    """
    patterns: List[QueryPattern] = []
    if {"events", "questions"} <= collections:
        patterns.extend(question_patterns())
    if {"players", "events"} <= collections:
        patterns.extend(player_patterns())
    return patterns
