from __future__ import annotations

from abc import ABC, abstractmethod

from vocab_drill.models import HistorySummary, VocabularyItem


class WordRepository(ABC):
    @abstractmethod
    def list_items(self, user_id: str) -> list[VocabularyItem]:
        ...

    @abstractmethod
    def insert_item(
        self,
        user_id: str,
        headword: str,
        definitions: list[str],
        description: str | None = None,
        part_of_speech: str | None = None,
    ) -> VocabularyItem:
        ...

    @abstractmethod
    def update_item(self, user_id: str, item_id: str, **fields) -> VocabularyItem | None:
        ...

    @abstractmethod
    def delete_item(self, user_id: str, item_id: str) -> bool:
        ...


class HistoryRecorder(ABC):
    @abstractmethod
    def record(self, summary: HistorySummary) -> str:
        """Store a finished session. Returns the new record id."""
        ...


class SnapshotStore(ABC):
    """Durable per-user slot holding one serialized practice session."""

    @abstractmethod
    def read_snapshot(self, user_id: str) -> str | None:
        ...

    @abstractmethod
    def write_snapshot(self, user_id: str, payload: str) -> None:
        ...

    @abstractmethod
    def clear_snapshot(self, user_id: str) -> None:
        ...


class MemorySnapshotStore(SnapshotStore):
    def __init__(self):
        self.slots: dict[str, str] = {}

    def read_snapshot(self, user_id: str) -> str | None:
        return self.slots.get(user_id)

    def write_snapshot(self, user_id: str, payload: str) -> None:
        self.slots[user_id] = payload

    def clear_snapshot(self, user_id: str) -> None:
        self.slots.pop(user_id, None)
