"""Free-practice drill: an untimed queue of items answered one at a time.

The session is a small state machine (idle -> active -> completed -> idle).
Every mutation is written through to the user's snapshot slot so a reload
resumes exactly where the last completed check or advance left off.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from vocab_drill.matcher import answer_inputs, join_inputs, matches, normalize
from vocab_drill.models import (
    Direction,
    HistorySummary,
    Mistake,
    OrderMode,
    SessionState,
    VocabularyItem,
)
from vocab_drill.persistence import SessionPersistence

if TYPE_CHECKING:
    from vocab_drill.ports import HistoryRecorder, SnapshotStore, WordRepository

_log = logging.getLogger("vocab_drill.practice")


class PracticeError(RuntimeError):
    pass


class SessionNotReady(PracticeError):
    """Items have not been loaded (or the last load failed)."""


class SessionComplete(PracticeError):
    """There is no current item to act on."""


class AlreadyChecked(PracticeError):
    """The current item was already graded; advance first."""


@dataclass
class CheckResult:
    correct: bool
    prompt: str
    user_answer: str
    accepted: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "correct": self.correct,
            "prompt": self.prompt,
            "user_answer": self.user_answer,
            "accepted": list(self.accepted),
        }


@dataclass
class FinishResult:
    summary: HistorySummary
    recorded: bool
    error: str | None = None


def stable_key(item: VocabularyItem) -> tuple[str, str]:
    return normalize(item.headword), item.id


class PracticeSession:
    def __init__(
        self,
        user_id: str,
        words: WordRepository,
        history: HistoryRecorder,
        store: SnapshotStore,
        direction: Direction = Direction.DEFINITIONS_TO_HEADWORD,
        order: OrderMode = OrderMode.SHUFFLED,
        allow_reguess: bool = False,
        rng: random.Random | None = None,
    ):
        self.user_id = user_id
        self.words = words
        self.history = history
        self.persistence = SessionPersistence(store, user_id)
        self.rng = rng or random.Random()
        self.state = SessionState(
            direction=Direction(direction),
            order=OrderMode(order),
            allow_reguess=allow_reguess,
        )
        self.items: dict[str, VocabularyItem] = {}
        self.ready = False
        self.completed = False
        self.load_error: str | None = None
        self.last_result: CheckResult | None = None

    # ── Loading ───────────────────────────────────────────────────────────

    def _fetch(self) -> list[VocabularyItem] | None:
        try:
            items = self.words.list_items(self.user_id)
        except Exception as e:
            _log.warning("Loading items for %s failed: %s", self.user_id, e)
            self.load_error = str(e) or e.__class__.__name__
            return None
        self.load_error = None
        return items

    def load(self) -> bool:
        """Fetch items, then restore the saved snapshot or build a fresh queue.

        Returns False when the repository could not be read; the session then
        has no items and stays idle until a later load succeeds.
        """
        self.ready = False
        self.completed = False
        self.last_result = None

        fetched = self._fetch()
        if fetched is None:
            self.items = {}
            return False
        self.items = {item.id: item for item in fetched}

        restored = self.persistence.load()
        if restored is not None and set(restored.queue) <= self.items.keys():
            self.state = restored
            _log.info(
                "Restored practice session for %s: %d queued, %d/%d correct",
                self.user_id, len(restored.queue),
                restored.correct_count, restored.total_attempts,
            )
        else:
            if restored is not None:
                _log.info("Snapshot for %s references deleted items, starting over",
                          self.user_id)
                self.persistence.clear()
            self.state.clear_progress()

        if not self.state.queue and self.state.total_attempts == 0:
            self.state.queue = self._build_queue()
            self.state.last_correct = None

        self.completed = not self.state.queue and self.state.total_attempts > 0
        self.ready = True
        self._save()
        return True

    def reload(self) -> bool:
        """Re-read the items mid-session and drop queue entries that vanished."""
        if not self.ready:
            return self.load()
        fetched = self._fetch()
        if fetched is None:
            return False
        self.items = {item.id: item for item in fetched}

        queue = self.state.queue
        front = queue[0] if queue else None
        self.state.queue = [q for q in queue if q in self.items]
        dropped = len(queue) - len(self.state.queue)
        if dropped:
            _log.info("Dropped %d deleted items from %s's queue", dropped, self.user_id)
        if front is not None and front not in self.items:
            self.state.last_correct = None
            self.last_result = None
        if not self.state.queue and self.state.total_attempts > 0:
            self.completed = True
        self._save()
        return True

    def _build_queue(self) -> list[str]:
        if self.state.order == OrderMode.STABLE:
            return [item.id for item in sorted(self.items.values(), key=stable_key)]
        ids = list(self.items)
        self.rng.shuffle(ids)
        return ids

    def _save(self) -> None:
        self.persistence.save(self.state)

    def _require_ready(self) -> None:
        if not self.ready:
            raise SessionNotReady(self.load_error or "Practice session is not loaded")

    # ── Read-only views ───────────────────────────────────────────────────

    @property
    def status(self) -> str:
        if not self.ready:
            return "idle"
        if self.completed:
            return "completed"
        return "active"

    @property
    def current(self) -> VocabularyItem | None:
        if not self.ready or not self.state.queue:
            return None
        return self.items.get(self.state.queue[0])

    @property
    def prompt(self) -> str | None:
        item = self.current
        return item.prompt(self.state.direction) if item else None

    @property
    def remaining(self) -> int:
        return len(self.state.queue)

    @property
    def accuracy(self) -> int:
        if self.state.total_attempts == 0:
            return 0
        return round(self.state.correct_count / self.state.total_attempts * 100)

    # ── Actions ───────────────────────────────────────────────────────────

    def check(self, answer: str | list[str]) -> CheckResult:
        """Grade *answer* against the current item.

        A string that is not itself an accepted answer is split on
        commas/semicolons into several inputs. Empty input raises
        EmptyAnswerError and changes nothing.
        """
        self._require_ready()
        item = self.current
        if item is None:
            raise SessionComplete("No item to check")
        if self.state.last_correct is not None:
            raise AlreadyChecked("Current item already checked")

        direction = self.state.direction
        if isinstance(answer, str):
            inputs = answer_inputs(direction, answer, item)
        else:
            inputs = list(answer)
        correct = matches(direction, inputs, item)

        user_answer = join_inputs(inputs)
        accepted = item.accepted(direction)
        self.state.total_attempts += 1
        if correct:
            self.state.correct_count += 1
        else:
            self.state.mistakes.append(Mistake(
                prompt=item.prompt(direction),
                user_answer=user_answer,
                correct_definitions=accepted,
            ))
        self.state.last_correct = correct
        self.last_result = CheckResult(correct, item.prompt(direction), user_answer, accepted)
        _log.debug("%s answered %r for %r: %s", self.user_id, user_answer,
                   item.headword, "correct" if correct else "wrong")
        self._save()
        return self.last_result

    def advance(self) -> VocabularyItem | None:
        """Move past the current item; returns the new current item, if any.

        A missed item goes to the back of the queue when re-guessing is on.
        """
        self._require_ready()
        if not self.state.queue:
            raise SessionComplete("Queue is empty")

        front = self.state.queue.pop(0)
        if self.state.last_correct is False and self.state.allow_reguess:
            self.state.queue.append(front)
        self.state.last_correct = None
        self.last_result = None

        # An empty item set is not a finished session.
        if not self.state.queue and self.state.total_attempts > 0:
            self.completed = True
            _log.info("Practice queue exhausted for %s (%d/%d correct)", self.user_id,
                      self.state.correct_count, self.state.total_attempts)
        self._save()
        return self.current

    def reset(self) -> None:
        self._require_ready()
        self.state.clear_progress()
        self.state.queue = self._build_queue()
        self.completed = False
        self.last_result = None
        self.persistence.clear()

    def finish(self) -> FinishResult:
        """Record the session in history, then reset.

        A history failure is logged and reported but never blocks the reset.
        """
        self._require_ready()
        summary = HistorySummary(
            user_id=self.user_id,
            direction=self.state.direction,
            total_attempts=self.state.total_attempts,
            correct_count=self.state.correct_count,
            mistakes=list(self.state.mistakes),
        )
        result = FinishResult(summary=summary, recorded=True)
        try:
            self.history.record(summary)
        except Exception as e:
            _log.warning("Recording practice history for %s failed: %s", self.user_id, e)
            result.recorded = False
            result.error = str(e) or e.__class__.__name__
        self.reset()
        return result

    def set_direction(self, direction: Direction | str) -> None:
        """Switch prompt side; queue and counters are untouched."""
        self.state.direction = Direction(direction)
        self.last_result = None
        self._save()

    def set_order(self, order: OrderMode | str) -> None:
        """Switch order mode, discarding the queue and statistics."""
        self.state.order = OrderMode(order)
        self.state.clear_progress()
        self.persistence.clear()
        self.completed = False
        self.last_result = None
        if self.ready:
            self.state.queue = self._build_queue()
            self._save()

    def set_allow_reguess(self, allow: bool) -> None:
        self.state.allow_reguess = bool(allow)
        self._save()

    def to_dict(self) -> dict:
        item = self.current
        current = None
        if item is not None:
            current = {
                "id": item.id,
                "prompt": item.prompt(self.state.direction),
                "description": item.description,
                "part_of_speech": item.part_of_speech,
            }
        return {
            "status": self.status,
            "load_error": self.load_error,
            "direction": self.state.direction.value,
            "order": self.state.order.value,
            "allow_reguess": self.state.allow_reguess,
            "correct_count": self.state.correct_count,
            "total_attempts": self.state.total_attempts,
            "accuracy": self.accuracy,
            "remaining": self.remaining,
            "total_items": len(self.items),
            "current": current,
            "checked": self.state.last_correct is not None,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "mistakes": [m.to_dict() for m in self.state.mistakes],
        }
