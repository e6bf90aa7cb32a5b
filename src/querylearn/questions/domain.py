"""
Authored question tables for the game dataset.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from querylearn.models import Category, Complexity

# pattern id -> [(text, intent, parameters)]
COMPOSITE_QUESTIONS: Dict[str, List[Tuple[str, str, Dict[str, Any]]]] = {
    "avg_attempts_per_question": [
        ("What is the average number of attempts per question?", "question_attempts", {}),
        ("How many times do players typically attempt each question?", "question_attempts", {}),
        ("Which questions take the most attempts to answer?", "hardest_questions", {}),
        ("What are the most difficult questions based on number of attempts?", "hardest_questions", {}),
    ],
    "correct_answer_rate_per_question": [
        ("What is the correct answer rate for each question?", "question_correctness", {}),
        ("Which questions have the lowest correct answer rate?", "hardest_questions", {}),
        ("What percentage of attempts for each question are correct?", "question_correctness", {}),
    ],
    "player_activity_over_time": [
        ("How does player activity change over time?", "player_activity", {}),
        ("Which players are most active and when?", "player_activity", {}),
        ("Show me the activity patterns of the top 10 most active players.", "player_activity", {}),
    ],
    "player_play_frequency": [
        ("What is the percentage of players who played more than 3 times?", "player_frequency", {"threshold": 3}),
        ("What percentage of players have played more than 5 times?", "player_frequency", {"threshold": 5}),
        ("How many players played more than 10 times as a percentage?", "player_frequency", {"threshold": 10}),
        ("What is the percentage of players who played more than once?", "player_frequency", {"threshold": 1}),
    ],
    "player_play_count_distribution": [
        ("What is the distribution of player play counts?", "player_distribution", {}),
        ("How many times do players typically play the game?", "player_distribution", {}),
        ("What percentage of players play the game only once?", "player_distribution", {}),
        ("Show me the breakdown of player engagement by number of plays.", "player_distribution", {}),
    ],
}


@dataclass(frozen=True)
class GameQuestion:
    """An unbound question emitted when all its required collections exist."""
    id: str
    text: str
    intent: str
    collections: List[str]
    requires: List[str]
    complexity: Complexity
    category: Category


_PROGRESS = ["players", "events", "zones"]
_LEARNING = ["players", "events", "questions"]

GAME_QUESTIONS: List[GameQuestion] = [
    GameQuestion("question_game_player_progress_1", "How far have players progressed through the game zones?",
                 "player_progress", _PROGRESS, _PROGRESS, Complexity.ADVANCED, Category.GAME_ANALYTICS),
    GameQuestion("question_game_player_progress_2", "Which zone do most players get stuck in?",
                 "player_progress", _PROGRESS, _PROGRESS, Complexity.ADVANCED, Category.GAME_ANALYTICS),
    GameQuestion("question_game_learning_outcomes_1", "What are the learning outcomes based on question performance?",
                 "learning_outcomes", _LEARNING, _LEARNING, Complexity.ADVANCED, Category.EDUCATIONAL_ANALYTICS),
    GameQuestion("question_game_learning_outcomes_2", "How does player performance on questions improve over time?",
                 "learning_outcomes", _LEARNING, _LEARNING, Complexity.ADVANCED, Category.EDUCATIONAL_ANALYTICS),
    GameQuestion("question_game_item_usage_1", "Which items are used most frequently by players?",
                 "item_usage", ["events", "items"], ["events", "items"],
                 Complexity.INTERMEDIATE, Category.GAME_ANALYTICS),
    GameQuestion("question_game_item_usage_2", "Is there a correlation between item usage and player progress?",
                 "item_usage", ["events", "items", "players"], ["events", "items"],
                 Complexity.ADVANCED, Category.GAME_ANALYTICS),
    GameQuestion("question_game_leaderboard_1", "Who are the top 10 players on the leaderboard?",
                 "leaderboard", ["leaderboards", "players"], ["leaderboards", "players"],
                 Complexity.BASIC, Category.GAME_ANALYTICS),
    GameQuestion("question_game_leaderboard_2", "How do leaderboard scores correlate with question performance?",
                 "leaderboard", ["leaderboards", "players", "events", "questions"], ["leaderboards", "players"],
                 Complexity.ADVANCED, Category.GAME_ANALYTICS),
]

# (source, middle, target) -> [(text, intent, pattern kind)]
SPECIFIC_MULTI_LEVEL_QUESTIONS: Dict[Tuple[str, str, str], List[Tuple[str, str, str]]] = {
    ("players", "events", "questions"): [
        ("Which questions have players answered through their events?", "multi_level_lookup", "lookup"),
        ("How many questions has each player answered?", "multi_level_count", "count"),
    ],
    ("players", "events", "items"): [
        ("Which items have players interacted with through their events?", "multi_level_lookup", "lookup"),
        ("How many items has each player interacted with?", "multi_level_count", "count"),
    ],
}
