from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class Direction(str, Enum):
    HEADWORD_TO_DEFINITIONS = "en-to-geo"
    DEFINITIONS_TO_HEADWORD = "geo-to-en"


class OrderMode(str, Enum):
    SHUFFLED = "shuffled"
    STABLE = "stable"


class InputMode(str, Enum):
    TEXT = "text"
    MULTIPLE = "multiple"


@dataclass
class VocabularyItem:
    id: str
    user_id: str
    headword: str
    definitions: list[str]
    description: str | None = None
    part_of_speech: str | None = None
    created_at: str = ""

    def prompt(self, direction: Direction) -> str:
        """Text shown to the user for this item."""
        if direction == Direction.HEADWORD_TO_DEFINITIONS:
            return self.headword
        return ", ".join(self.definitions)

    def accepted(self, direction: Direction) -> list[str]:
        """Answers accepted for this item, in display order."""
        if direction == Direction.HEADWORD_TO_DEFINITIONS:
            return list(self.definitions)
        return [self.headword]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "headword": self.headword,
            "definitions": list(self.definitions),
            "description": self.description,
            "part_of_speech": self.part_of_speech,
            "created_at": self.created_at,
        }


@dataclass
class Mistake:
    prompt: str
    user_answer: str
    correct_definitions: list[str]

    def to_dict(self) -> dict:
        return {
            "prompt": self.prompt,
            "user_answer": self.user_answer,
            "correct_definitions": list(self.correct_definitions),
        }


@dataclass
class SessionState:
    queue: list[str] = field(default_factory=list)
    direction: Direction = Direction.DEFINITIONS_TO_HEADWORD
    order: OrderMode = OrderMode.SHUFFLED
    allow_reguess: bool = False
    correct_count: int = 0
    total_attempts: int = 0
    mistakes: list[Mistake] = field(default_factory=list)
    last_correct: bool | None = None  # result of the check on queue[0], if any

    def clear_progress(self) -> None:
        self.queue = []
        self.correct_count = 0
        self.total_attempts = 0
        self.mistakes = []
        self.last_correct = None


@dataclass
class HistorySummary:
    user_id: str
    direction: Direction
    total_attempts: int
    correct_count: int
    mistakes: list[Mistake] = field(default_factory=list)
    mode: str = "practice"  # practice | test
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def score(self) -> float:
        if self.total_attempts <= 0:
            return 0
        return round(self.correct_count / self.total_attempts * 100, 1)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "timestamp": self.timestamp,
            "direction": self.direction.value,
            "mode": self.mode,
            "total_attempts": self.total_attempts,
            "correct_count": self.correct_count,
            "score": self.score,
            "mistakes": [m.to_dict() for m in self.mistakes],
        }


@dataclass
class TestQuestion:
    __test__ = False

    item: VocabularyItem
    user_answer: str = ""
    is_correct: bool = False
    answered: bool = False
