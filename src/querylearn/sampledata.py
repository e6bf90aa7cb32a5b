"""
Deterministic sample game dataset.

Builds players, events, items, zones, questions and leaderboards with the
field names the learning pipeline expects, so a fresh database can be seeded
and learned end to end.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta
from typing import Any, Dict, List

from bson import ObjectId
from faker import Faker

logger = logging.getLogger(__name__)

EVENT_TYPES = ["question", "item", "zone", "login"]
DIFFICULTIES = ["easy", "medium", "hard"]
CAMPAIGNS = ["tutorial", "forest", "castle", "ocean"]
START = datetime(2024, 1, 1)


class SampleDataBuilder:
    """Generates related game documents from one seed."""

    def __init__(self, seed: int = 42):
        self.faker = Faker()
        self.faker.seed_instance(seed)
        self.rng = random.Random(seed)

    def object_id(self) -> ObjectId:
        return ObjectId(self.faker.hexify(text="^" * 24))

    def build(
        self,
        players: int = 50,
        events_per_player: int = 20,
        items: int = 15,
        zones: int = 8,
        questions: int = 25,
    ) -> Dict[str, List[Dict[str, Any]]]:
        """
        Build the dataset.

        Args:
            players: Number of players
            events_per_player: Average events per player
            items: Number of items
            zones: Number of zones
            questions: Number of questions

        Returns:
            Collection name -> documents
        """
        item_docs = [self.item(i) for i in range(items)]
        zone_docs = [self.zone(i) for i in range(zones)]
        question_docs = [self.question() for _ in range(questions)]
        player_docs = [self.player(i) for i in range(players)]

        event_docs = []
        for player in player_docs:
            count = max(1, int(self.rng.gauss(events_per_player, events_per_player / 3)))
            for _ in range(count):
                event_docs.append(self.event(player, item_docs, zone_docs, question_docs))

        leaderboard_docs = [self.leaderboard_entry(p) for p in player_docs]

        dataset = {
            "players": player_docs,
            "events": event_docs,
            "items": item_docs,
            "zones": zone_docs,
            "questions": question_docs,
            "leaderboards": leaderboard_docs,
        }
        logger.info(
            "Built sample dataset: "
            + ", ".join(f"{name}={len(docs)}" for name, docs in dataset.items())
        )
        return dataset

    def player(self, index: int) -> Dict[str, Any]:
        return {
            "_id": self.object_id(),
            "playerId": f"P{index + 1:05d}",
            "name": self.faker.name(),
            "email": self.faker.email(),
            "level": self.rng.randint(1, 60),
            "country": self.faker.country_code(),
            "createdAt": START + timedelta(days=self.rng.randint(0, 90)),
        }

    def item(self, index: int) -> Dict[str, Any]:
        return {
            "_id": self.object_id(),
            "name": f"{self.faker.color_name()} {self.faker.word()}".title(),
            "rarity": self.rng.choice(["common", "rare", "epic", "legendary"]),
            "price": round(self.rng.uniform(1, 500), 2),
            "slot": index % 4,
        }

    def zone(self, index: int) -> Dict[str, Any]:
        return {
            "_id": f"zone_{index + 1}",
            "name": self.faker.city(),
            "difficulty": self.rng.choice(DIFFICULTIES),
            "campaign": self.rng.choice(CAMPAIGNS),
        }

    def question(self) -> Dict[str, Any]:
        return {
            "_id": self.object_id(),
            "text": self.faker.sentence(nb_words=8).rstrip(".") + "?",
            "answer": self.faker.word(),
            "difficulty": self.rng.choice(DIFFICULTIES),
            "campaign": self.rng.choice(CAMPAIGNS),
        }

    def event(
        self,
        player: Dict[str, Any],
        items: List[Dict[str, Any]],
        zones: List[Dict[str, Any]],
        questions: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        event_type = self.rng.choice(EVENT_TYPES)
        doc: Dict[str, Any] = {
            "_id": self.object_id(),
            "playerId": player["playerId"],
            "type": event_type,
            "timestamp": player["createdAt"] + timedelta(minutes=self.rng.randint(0, 60 * 24 * 60)),
            "context": {},
        }

        if event_type == "question" and questions:
            question = self.rng.choice(questions)
            # Question ids are recorded as strings by the game client
            doc["context"]["questionId"] = str(question["_id"])
            doc["correct"] = self.rng.random() < 0.6
        elif event_type == "item" and items:
            doc["context"]["itemId"] = self.rng.choice(items)["_id"]
        elif event_type == "zone" and zones:
            doc["context"]["zoneId"] = self.rng.choice(zones)["_id"]
        else:
            doc["context"]["device"] = self.rng.choice(["ios", "android", "web"])

        return doc

    def leaderboard_entry(self, player: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "_id": self.object_id(),
            "playerId": player["playerId"],
            "score": self.rng.randint(0, 100000),
            "season": self.rng.choice(["2024-S1", "2024-S2"]),
        }


def build_dataset(seed: int = 42, players: int = 50, events_per_player: int = 20) -> Dict[str, List[Dict[str, Any]]]:
    """Build the sample game dataset for a seed."""
    return SampleDataBuilder(seed).build(players=players, events_per_player=events_per_player)
