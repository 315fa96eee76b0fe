"""Fixed-length test: sample N items, grade one answer each, then show results."""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from vocab_drill.distractors import OPTION_COUNT, build_options
from vocab_drill.matcher import answer_inputs, join_inputs, matches
from vocab_drill.models import (
    Direction,
    HistorySummary,
    InputMode,
    Mistake,
    TestQuestion,
    VocabularyItem,
)

if TYPE_CHECKING:
    from vocab_drill.ports import HistoryRecorder, WordRepository

_log = logging.getLogger("vocab_drill.quiz")

SETUP = "setup"
TESTING = "testing"
RESULTS = "results"


class QuizError(RuntimeError):
    pass


class WrongStage(QuizError):
    pass


class ItemLoadError(QuizError):
    pass


class NoItemsError(QuizError):
    pass


class AlreadyAnswered(QuizError):
    pass


class NotAnswered(QuizError):
    pass


class InvalidSampleSize(ValueError):
    pass


@dataclass
class TestResults:
    __test__ = False

    direction: Direction
    input_mode: InputMode
    questions: list[TestQuestion] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def correct_count(self) -> int:
        return sum(1 for q in self.questions if q.is_correct)

    @property
    def score(self) -> int:
        if not self.questions:
            return 0
        return round(self.correct_count / self.total * 100)

    def mistakes(self) -> list[Mistake]:
        return [
            Mistake(
                prompt=q.item.prompt(self.direction),
                user_answer=q.user_answer,
                correct_definitions=q.item.accepted(self.direction),
            )
            for q in self.questions
            if not q.is_correct
        ]

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "input_mode": self.input_mode.value,
            "total": self.total,
            "correct_count": self.correct_count,
            "score": self.score,
            "questions": [
                {
                    "id": q.item.id,
                    "prompt": q.item.prompt(self.direction),
                    "user_answer": q.user_answer,
                    "is_correct": q.is_correct,
                    "accepted": q.item.accepted(self.direction),
                }
                for q in self.questions
            ],
        }


class TestSession:
    """Setup -> testing -> results. Nothing here survives a reload."""

    __test__ = False

    def __init__(
        self,
        user_id: str,
        words: WordRepository,
        history: HistoryRecorder | None = None,
        rng: random.Random | None = None,
        options_count: int = OPTION_COUNT,
    ):
        self.user_id = user_id
        self.words = words
        self.history = history
        self.rng = rng or random.Random()
        self.options_count = options_count
        self._clear()

    def _clear(self) -> None:
        self.stage = SETUP
        self.direction = Direction.DEFINITIONS_TO_HEADWORD
        self.input_mode = InputMode.MULTIPLE
        self.questions: list[TestQuestion] = []
        self.index = 0
        self.options: list[str] = []
        self.pool: list[VocabularyItem] = []
        self.history_error: str | None = None

    def _require(self, stage: str) -> None:
        if self.stage != stage:
            raise WrongStage(f"Test is in {self.stage!r}, expected {stage!r}")

    # ── Setup ─────────────────────────────────────────────────────────────

    def start(
        self,
        size: int,
        direction: Direction | str = Direction.DEFINITIONS_TO_HEADWORD,
        input_mode: InputMode | str = InputMode.MULTIPLE,
    ) -> TestQuestion:
        """Sample *size* items and enter the testing stage.

        Any failure leaves the session in setup with no partial state.
        """
        self._require(SETUP)
        direction = Direction(direction)
        input_mode = InputMode(input_mode)

        try:
            items = self.words.list_items(self.user_id)
        except Exception as e:
            _log.warning("Loading items for %s failed: %s", self.user_id, e)
            raise ItemLoadError(str(e) or e.__class__.__name__) from e
        if not items:
            raise NoItemsError("No words available. Add some words first.")
        if isinstance(size, bool) or not isinstance(size, int) or not 1 <= size <= len(items):
            raise InvalidSampleSize(
                f"Test size must be between 1 and {len(items)}, got {size!r}"
            )

        sample = self.rng.sample(items, size)
        self.direction = direction
        self.input_mode = input_mode
        self.pool = items
        self.questions = [TestQuestion(item=item) for item in sample]
        self.index = 0
        self.stage = TESTING
        self._refresh_options()
        _log.info("Test started for %s: %d questions, %s, %s",
                  self.user_id, size, direction.value, input_mode.value)
        return self.current

    # ── Testing ───────────────────────────────────────────────────────────

    @property
    def current(self) -> TestQuestion | None:
        if self.stage != TESTING:
            return None
        return self.questions[self.index]

    @property
    def is_last(self) -> bool:
        return self.index >= len(self.questions) - 1

    def _refresh_options(self) -> None:
        if self.input_mode != InputMode.MULTIPLE:
            self.options = []
            return
        item = self.current.item
        accepted = item.accepted(self.direction)
        self.options = build_options(
            accepted[0],
            self.pool,
            self.direction,
            exclude=[item.id],
            exclude_answers=accepted,
            rng=self.rng,
            size=self.options_count,
        )

    def submit(self, answer: str | list[str]) -> bool:
        """Record the answer to the current question. One answer per question."""
        self._require(TESTING)
        question = self.current
        if question.answered:
            raise AlreadyAnswered("Question already answered")

        if isinstance(answer, str):
            if self.input_mode == InputMode.MULTIPLE:
                inputs = [answer]
            else:
                inputs = answer_inputs(self.direction, answer, question.item)
        else:
            inputs = list(answer)
        correct = matches(self.direction, inputs, question.item)

        question.user_answer = join_inputs(inputs)
        question.is_correct = correct
        question.answered = True
        return correct

    def advance(self) -> str:
        """Go to the next question, or to results after the last one."""
        self._require(TESTING)
        if not self.current.answered:
            raise NotAnswered("Answer the current question first")
        if self.is_last:
            self.stage = RESULTS
            self.options = []
            self._record()
        else:
            self.index += 1
            self._refresh_options()
        return self.stage

    def _record(self) -> None:
        results = self.results()
        _log.info("Test finished for %s: %d/%d", self.user_id,
                  results.correct_count, results.total)
        if self.history is None:
            return
        summary = HistorySummary(
            user_id=self.user_id,
            direction=self.direction,
            total_attempts=results.total,
            correct_count=results.correct_count,
            mistakes=results.mistakes(),
            mode="test",
        )
        try:
            self.history.record(summary)
        except Exception as e:
            _log.warning("Recording test history for %s failed: %s", self.user_id, e)
            self.history_error = str(e) or e.__class__.__name__

    # ── Results ───────────────────────────────────────────────────────────

    def results(self) -> TestResults:
        self._require(RESULTS)
        return TestResults(self.direction, self.input_mode, list(self.questions))

    def retake(self) -> None:
        self._clear()

    def to_dict(self) -> dict:
        data = {
            "stage": self.stage,
            "direction": self.direction.value,
            "input_mode": self.input_mode.value,
            "total": len(self.questions),
        }
        question = self.current
        if question is not None:
            data["question"] = {
                "index": self.index,
                "number": self.index + 1,
                "prompt": question.item.prompt(self.direction),
                "description": question.item.description,
                "answered": question.answered,
                "is_correct": question.is_correct if question.answered else None,
            }
            data["options"] = list(self.options)
        if self.stage == RESULTS:
            data["results"] = self.results().to_dict()
            data["history_error"] = self.history_error
        return data
