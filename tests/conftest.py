"""Shared test fixtures."""
from __future__ import annotations

import random

import pytest

from vocab_drill.db import Database
from vocab_drill.models import HistorySummary, VocabularyItem
from vocab_drill.ports import HistoryRecorder, MemorySnapshotStore, WordRepository


def make_item(item_id: str, headword: str, definitions: list[str], user_id: str = "u1", **kw) -> VocabularyItem:
    return VocabularyItem(id=item_id, user_id=user_id, headword=headword,
                          definitions=definitions, **kw)


class FakeWords(WordRepository):
    """In-memory word repository; set ``fail`` to make list_items raise."""

    def __init__(self, items: list[VocabularyItem] | None = None):
        self.items = list(items or [])
        self.fail = False

    def list_items(self, user_id: str) -> list[VocabularyItem]:
        if self.fail:
            raise ConnectionError("repository unavailable")
        return [i for i in self.items if i.user_id == user_id]

    def insert_item(self, user_id, headword, definitions, description=None, part_of_speech=None):
        item = make_item(f"w{len(self.items) + 1}", headword, definitions, user_id,
                         description=description, part_of_speech=part_of_speech)
        self.items.append(item)
        return item

    def update_item(self, user_id, item_id, **fields):
        for item in self.items:
            if item.id == item_id and item.user_id == user_id:
                for k, v in fields.items():
                    setattr(item, k, v)
                return item
        return None

    def delete_item(self, user_id, item_id):
        before = len(self.items)
        self.items = [i for i in self.items if not (i.id == item_id and i.user_id == user_id)]
        return len(self.items) < before


class FakeHistory(HistoryRecorder):
    def __init__(self, fail: bool = False):
        self.records: list[HistorySummary] = []
        self.fail = fail

    def record(self, summary: HistorySummary) -> str:
        if self.fail:
            raise ConnectionError("history unavailable")
        self.records.append(summary)
        return f"h{len(self.records)}"


@pytest.fixture
def tmp_db(tmp_path):
    """Create a fresh temporary database."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def cat_item():
    return make_item("cat", "cat", ["კატა"])


@pytest.fixture
def sample_items():
    """A small Georgian/English word list."""
    return [
        make_item("cat", "cat", ["კატა"]),
        make_item("dog", "dog", ["ძაღლი"]),
        make_item("house", "house", ["სახლი", "შენობა"]),
        make_item("water", "water", ["წყალი"]),
        make_item("book", "book", ["წიგნი"]),
        make_item("apple", "apple", ["ვაშლი"]),
    ]


@pytest.fixture
def words(sample_items):
    return FakeWords(sample_items)


@pytest.fixture
def history():
    return FakeHistory()


@pytest.fixture
def store():
    return MemorySnapshotStore()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def word_list_md():
    """Minimal word list for parser testing."""
    return """\
# My Words

## Nouns

| Word | Definitions | Description |
|------|-------------|-------------|
| **cat** | კატა | a small pet |
| **house** | სახლი, შენობა | |

## Verbs

| Word | Definitions |
|------|-------------|
| **to write** | წერა; დაწერა |

## Misc

| Word | Definitions |
|------|-------------|
| **hello** | გამარჯობა |
| plain | not bold, skipped |
"""
