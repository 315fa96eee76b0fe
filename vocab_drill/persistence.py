"""Serialize an in-progress practice session into a per-user snapshot slot."""
from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from vocab_drill.models import Direction, Mistake, OrderMode, SessionState

if TYPE_CHECKING:
    from vocab_drill.ports import SnapshotStore

_log = logging.getLogger("vocab_drill.persistence")

SNAPSHOT_VERSION = 1


def encode_state(user_id: str, state: SessionState) -> str:
    return json.dumps({
        "version": SNAPSHOT_VERSION,
        "user_id": user_id,
        "queue": list(state.queue),
        "direction": state.direction.value,
        "order": state.order.value,
        "allow_reguess": state.allow_reguess,
        "correct_count": state.correct_count,
        "total_attempts": state.total_attempts,
        "mistakes": [m.to_dict() for m in state.mistakes],
        "last_correct": state.last_correct,
    }, ensure_ascii=False)


def _int(raw, default: int = 0) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        return default
    return raw


def _mistakes(raw) -> list[Mistake]:
    if not isinstance(raw, list):
        return []
    out: list[Mistake] = []
    for m in raw:
        if not isinstance(m, dict):
            continue
        correct = m.get("correct_definitions")
        if not isinstance(correct, list):
            correct = []
        out.append(Mistake(
            prompt=str(m.get("prompt", "")),
            user_answer=str(m.get("user_answer", "")),
            correct_definitions=[str(c) for c in correct],
        ))
    return out


def decode_state(payload: str, user_id: str) -> SessionState | None:
    """Rebuild a SessionState from *payload*.

    Unknown keys are ignored and missing or ill-typed ones fall back to
    defaults. Returns None when the payload is not a JSON object or belongs
    to another user.
    """
    try:
        raw = json.loads(payload)
    except (json.JSONDecodeError, TypeError) as e:
        _log.warning("Discarding unreadable practice snapshot: %s", e)
        return None
    if not isinstance(raw, dict):
        _log.warning("Discarding practice snapshot: not an object")
        return None
    if raw.get("user_id") != user_id:
        _log.info("Discarding practice snapshot owned by another user")
        return None

    defaults = SessionState()
    queue = raw.get("queue")
    if not isinstance(queue, list):
        queue = []
    try:
        direction = Direction(raw.get("direction"))
    except ValueError:
        direction = defaults.direction
    try:
        order = OrderMode(raw.get("order"))
    except ValueError:
        order = defaults.order
    allow_reguess = raw.get("allow_reguess")
    if not isinstance(allow_reguess, bool):
        allow_reguess = defaults.allow_reguess
    last_correct = raw.get("last_correct")
    if not isinstance(last_correct, bool):
        last_correct = None

    return SessionState(
        queue=[str(q) for q in queue if isinstance(q, (str, int))],
        direction=direction,
        order=order,
        allow_reguess=allow_reguess,
        correct_count=_int(raw.get("correct_count")),
        total_attempts=_int(raw.get("total_attempts")),
        mistakes=_mistakes(raw.get("mistakes")),
        last_correct=last_correct,
    )


class SessionPersistence:
    """Snapshot port bound to one user.

    Failures never propagate: an unreadable slot reads as "no snapshot" and a
    failed write leaves the in-memory session authoritative.
    """

    def __init__(self, store: SnapshotStore, user_id: str):
        self.store = store
        self.user_id = user_id

    def load(self) -> SessionState | None:
        try:
            payload = self.store.read_snapshot(self.user_id)
        except Exception as e:
            _log.warning("Reading practice snapshot for %s failed: %s", self.user_id, e)
            return None
        if payload is None:
            return None
        return decode_state(payload, self.user_id)

    def save(self, state: SessionState) -> None:
        try:
            self.store.write_snapshot(self.user_id, encode_state(self.user_id, state))
        except Exception as e:
            _log.warning("Writing practice snapshot for %s failed: %s", self.user_id, e)

    def clear(self) -> None:
        try:
            self.store.clear_snapshot(self.user_id)
        except Exception as e:
            _log.warning("Clearing practice snapshot for %s failed: %s", self.user_id, e)
