from __future__ import annotations

import json
import logging
import re
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path

from vocab_drill.matcher import normalize
from vocab_drill.models import HistorySummary, VocabularyItem
from vocab_drill.ports import HistoryRecorder, SnapshotStore, WordRepository

_log = logging.getLogger("vocab_drill.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS words (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    headword TEXT NOT NULL,
    headword_norm TEXT NOT NULL,
    definitions_json TEXT NOT NULL,
    description TEXT,
    part_of_speech TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS words_user_headword
    ON words (user_id, headword_norm);

CREATE TABLE IF NOT EXISTS history (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    mode TEXT NOT NULL DEFAULT 'practice',
    direction TEXT NOT NULL,
    recorded_at TEXT NOT NULL,
    total_attempts INTEGER NOT NULL DEFAULT 0,
    correct_count INTEGER NOT NULL DEFAULT 0,
    mistakes_json TEXT NOT NULL DEFAULT '[]'
);

CREATE INDEX IF NOT EXISTS history_user_date
    ON history (user_id, recorded_at);

CREATE TABLE IF NOT EXISTS practice_snapshots (
    user_id TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

ITEM_FIELDS = ("headword", "definitions", "description", "part_of_speech")

# Score bands used by the history filter (percent correct).
SCORE_BANDS = {
    "high": (80, None),
    "medium": (50, 80),
    "low": (None, 50),
}

_SCORE_SQL = (
    "CASE WHEN total_attempts > 0 "
    "THEN CAST(correct_count AS REAL) * 100 / total_attempts ELSE 0 END"
)

_WS = re.compile(r"\s+")


class InvalidWordError(ValueError):
    pass


class DuplicateWordError(ValueError):
    """A word with the same normalized headword already exists for the user."""

    def __init__(self, existing: VocabularyItem):
        super().__init__(f"'{existing.headword}' already exists")
        self.existing = existing


def clean_headword(headword: str) -> str:
    return _WS.sub(" ", headword or "").strip()


def clean_definitions(definitions: list[str]) -> list[str]:
    """Collapse whitespace, drop blanks and repeated entries, keep order."""
    seen: set[str] = set()
    cleaned: list[str] = []
    for raw in definitions or []:
        d = _WS.sub(" ", raw or "").strip()
        if not d or d in seen:
            continue
        seen.add(d)
        cleaned.append(d)
    return cleaned


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database(WordRepository, HistoryRecorder, SnapshotStore):
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    # ── Words ─────────────────────────────────────────────────────────────

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> VocabularyItem:
        return VocabularyItem(
            id=row["id"],
            user_id=row["user_id"],
            headword=row["headword"],
            definitions=json.loads(row["definitions_json"]),
            description=row["description"],
            part_of_speech=row["part_of_speech"],
            created_at=row["created_at"],
        )

    def list_items(self, user_id: str) -> list[VocabularyItem]:
        rows = self.conn.execute(
            "SELECT * FROM words WHERE user_id = ? ORDER BY created_at, id",
            (user_id,),
        ).fetchall()
        return [self._row_to_item(r) for r in rows]

    def get_item(self, user_id: str, item_id: str) -> VocabularyItem | None:
        row = self.conn.execute(
            "SELECT * FROM words WHERE id = ? AND user_id = ?", (item_id, user_id)
        ).fetchone()
        return self._row_to_item(row) if row else None

    def find_by_headword(self, user_id: str, headword: str) -> VocabularyItem | None:
        row = self.conn.execute(
            "SELECT * FROM words WHERE user_id = ? AND headword_norm = ?",
            (user_id, normalize(headword)),
        ).fetchone()
        return self._row_to_item(row) if row else None

    def insert_item(
        self,
        user_id: str,
        headword: str,
        definitions: list[str],
        description: str | None = None,
        part_of_speech: str | None = None,
    ) -> VocabularyItem:
        headword = clean_headword(headword)
        definitions = clean_definitions(definitions)
        if not headword:
            raise InvalidWordError("Headword is required")
        if not definitions:
            raise InvalidWordError("At least one definition is required")

        existing = self.find_by_headword(user_id, headword)
        if existing is not None:
            raise DuplicateWordError(existing)

        now = _now()
        item = VocabularyItem(
            id=uuid.uuid4().hex,
            user_id=user_id,
            headword=headword,
            definitions=definitions,
            description=description or None,
            part_of_speech=part_of_speech or None,
            created_at=now,
        )
        self.conn.execute(
            "INSERT INTO words (id, user_id, headword, headword_norm, definitions_json, "
            "description, part_of_speech, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (item.id, user_id, headword, normalize(headword),
             json.dumps(definitions, ensure_ascii=False),
             item.description, item.part_of_speech, now, now),
        )
        self.conn.commit()
        return item

    def update_item(self, user_id: str, item_id: str, **fields) -> VocabularyItem | None:
        item = self.get_item(user_id, item_id)
        if item is None:
            return None
        unknown = set(fields) - set(ITEM_FIELDS)
        if unknown:
            raise InvalidWordError(f"Unknown fields: {', '.join(sorted(unknown))}")

        if "headword" in fields:
            headword = clean_headword(fields["headword"])
            if not headword:
                raise InvalidWordError("Headword is required")
            existing = self.find_by_headword(user_id, headword)
            if existing is not None and existing.id != item_id:
                raise DuplicateWordError(existing)
            item.headword = headword
        if "definitions" in fields:
            definitions = clean_definitions(fields["definitions"])
            if not definitions:
                raise InvalidWordError("At least one definition is required")
            item.definitions = definitions
        if "description" in fields:
            item.description = fields["description"] or None
        if "part_of_speech" in fields:
            item.part_of_speech = fields["part_of_speech"] or None

        self.conn.execute(
            "UPDATE words SET headword=?, headword_norm=?, definitions_json=?, "
            "description=?, part_of_speech=?, updated_at=? WHERE id=? AND user_id=?",
            (item.headword, normalize(item.headword),
             json.dumps(item.definitions, ensure_ascii=False),
             item.description, item.part_of_speech, _now(), item_id, user_id),
        )
        self.conn.commit()
        return item

    def delete_item(self, user_id: str, item_id: str) -> bool:
        cur = self.conn.execute(
            "DELETE FROM words WHERE id = ? AND user_id = ?", (item_id, user_id)
        )
        self.conn.commit()
        return cur.rowcount > 0

    def delete_items(self, user_id: str, item_ids: list[str]) -> int:
        count = 0
        for item_id in item_ids:
            cur = self.conn.execute(
                "DELETE FROM words WHERE id = ? AND user_id = ?", (item_id, user_id)
            )
            count += cur.rowcount
        self.conn.commit()
        return count

    def import_entries(self, user_id: str, entries: list) -> tuple[int, int]:
        """Insert parsed word-list entries, skipping duplicates and invalid rows.

        Returns (imported, skipped).
        """
        imported = skipped = 0
        for e in entries:
            try:
                self.insert_item(user_id, e.headword, e.definitions,
                                 e.description, e.part_of_speech)
                imported += 1
            except (DuplicateWordError, InvalidWordError) as err:
                _log.debug("Skipping %r: %s", e.headword, err)
                skipped += 1
        return imported, skipped

    def _search_clause(self, user_id: str, term: str) -> tuple[str, list]:
        term = (term or "").strip()
        if not term:
            return "user_id = ?", [user_id]
        # definitions_json is stored unescaped so non-ASCII text stays searchable.
        pattern = _like_pattern(normalize(term))
        return (
            "user_id = ? AND (headword_norm LIKE ? ESCAPE '\\' "
            "OR LOWER(definitions_json) LIKE ? ESCAPE '\\')",
            [user_id, pattern, pattern],
        )

    def search_items(
        self,
        user_id: str,
        term: str = "",
        offset: int = 0,
        limit: int = 20,
        sort: str = "headword",
        order: str = "asc",
    ) -> list[VocabularyItem]:
        """Case-insensitive substring search across headwords and definitions."""
        column = {"headword": "headword_norm", "created_at": "created_at"}.get(sort)
        if column is None:
            raise ValueError(f"Unknown sort column: {sort}")
        direction = "DESC" if order == "desc" else "ASC"
        where, params = self._search_clause(user_id, term)
        rows = self.conn.execute(
            f"SELECT * FROM words WHERE {where} "
            f"ORDER BY {column} {direction}, id LIMIT ? OFFSET ?",
            (*params, limit, offset),
        ).fetchall()
        return [self._row_to_item(r) for r in rows]

    def count_items(self, user_id: str, term: str = "") -> int:
        where, params = self._search_clause(user_id, term)
        row = self.conn.execute(
            f"SELECT COUNT(*) FROM words WHERE {where}", params
        ).fetchone()
        return row[0]

    # ── History ───────────────────────────────────────────────────────────

    def record(self, summary: HistorySummary) -> str:
        record_id = uuid.uuid4().hex
        self.conn.execute(
            "INSERT INTO history (id, user_id, mode, direction, recorded_at, "
            "total_attempts, correct_count, mistakes_json) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record_id,
                summary.user_id,
                summary.mode,
                summary.direction.value,
                summary.timestamp,
                summary.total_attempts,
                summary.correct_count,
                json.dumps([m.to_dict() for m in summary.mistakes], ensure_ascii=False),
            ),
        )
        self.conn.commit()
        _log.info("Recorded %s history for %s: %d/%d", summary.mode, summary.user_id,
                  summary.correct_count, summary.total_attempts)
        return record_id

    @staticmethod
    def _row_to_history(row: sqlite3.Row) -> dict:
        rec = dict(row)
        rec["mistakes"] = json.loads(rec.pop("mistakes_json") or "[]")
        rec["score"] = round(rec.pop("score"), 1)
        return rec

    def list_history(
        self,
        user_id: str,
        direction: str | None = None,
        score_band: str | None = None,
        mode: str | None = None,
        sort: str = "date",
        order: str = "desc",
    ) -> list[dict]:
        """History records for *user_id*, filtered and sorted.

        score_band is one of SCORE_BANDS (high >= 80, medium 50-79, low < 50).
        """
        where = ["user_id = ?"]
        params: list = [user_id]
        if direction:
            where.append("direction = ?")
            params.append(direction)
        if mode:
            where.append("mode = ?")
            params.append(mode)
        if score_band:
            if score_band not in SCORE_BANDS:
                raise ValueError(f"Unknown score band: {score_band}")
            low, high = SCORE_BANDS[score_band]
            if low is not None:
                where.append(f"({_SCORE_SQL}) >= ?")
                params.append(low)
            if high is not None:
                where.append(f"({_SCORE_SQL}) < ?")
                params.append(high)

        column = {"date": "recorded_at", "score": "score"}.get(sort)
        if column is None:
            raise ValueError(f"Unknown sort column: {sort}")
        direction_sql = "ASC" if order == "asc" else "DESC"
        rows = self.conn.execute(
            f"SELECT *, {_SCORE_SQL} AS score FROM history "
            f"WHERE {' AND '.join(where)} "
            f"ORDER BY {column} {direction_sql}, recorded_at DESC",
            params,
        ).fetchall()
        return [self._row_to_history(r) for r in rows]

    def delete_history(self, user_id: str, record_ids: list[str]) -> int:
        count = 0
        for record_id in record_ids:
            cur = self.conn.execute(
                "DELETE FROM history WHERE id = ? AND user_id = ?", (record_id, user_id)
            )
            count += cur.rowcount
        self.conn.commit()
        return count

    def clear_history(self, user_id: str) -> int:
        cur = self.conn.execute("DELETE FROM history WHERE user_id = ?", (user_id,))
        self.conn.commit()
        return cur.rowcount

    # ── Practice snapshots ────────────────────────────────────────────────

    def read_snapshot(self, user_id: str) -> str | None:
        row = self.conn.execute(
            "SELECT payload FROM practice_snapshots WHERE user_id = ?", (user_id,)
        ).fetchone()
        return row["payload"] if row else None

    def write_snapshot(self, user_id: str, payload: str) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO practice_snapshots (user_id, payload, updated_at) "
            "VALUES (?, ?, ?)",
            (user_id, payload, _now()),
        )
        self.conn.commit()

    def clear_snapshot(self, user_id: str) -> None:
        self.conn.execute("DELETE FROM practice_snapshots WHERE user_id = ?", (user_id,))
        self.conn.commit()

    # ── Stats ─────────────────────────────────────────────────────────────

    def get_stats(self, user_id: str) -> dict:
        word_count = self.count_items(user_id)
        history = self.conn.execute(
            f"SELECT COUNT(*) AS cnt, COALESCE(AVG({_SCORE_SQL}), 0) AS avg_score, "
            "COALESCE(SUM(total_attempts), 0) AS answered, "
            "COALESCE(SUM(correct_count), 0) AS correct "
            "FROM history WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        answered = history["answered"]
        correct = history["correct"]
        return {
            "total_words": word_count,
            "total_sessions": history["cnt"],
            "average_score": round(history["avg_score"]),
            "total_answered": answered,
            "total_correct": correct,
            "accuracy": round(correct / answered * 100, 1) if answered > 0 else 0,
        }
