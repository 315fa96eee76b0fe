"""Tests for the free-practice session state machine."""
from __future__ import annotations

import random

import pytest

from vocab_drill.matcher import EmptyAnswerError
from vocab_drill.models import Direction, OrderMode
from vocab_drill.persistence import SessionPersistence
from vocab_drill.ports import MemorySnapshotStore
from vocab_drill.practice import (
    AlreadyChecked,
    PracticeSession,
    SessionComplete,
    SessionNotReady,
)

from conftest import FakeHistory, FakeWords, make_item

H2D = Direction.HEADWORD_TO_DEFINITIONS
D2H = Direction.DEFINITIONS_TO_HEADWORD


def _session(words, history, store, **kw) -> PracticeSession:
    kw.setdefault("rng", random.Random(42))
    return PracticeSession("u1", words, history, store, **kw)


@pytest.fixture
def single(cat_item, history, store):
    """A loaded session over the single item 'cat'."""
    def build(allow_reguess: bool) -> PracticeSession:
        s = _session(FakeWords([cat_item]), history, store,
                     direction=H2D, allow_reguess=allow_reguess)
        assert s.load()
        return s
    return build


class TestLoad:
    def test_idle_before_load(self, words, history, store):
        s = _session(words, history, store)
        assert s.status == "idle"
        assert s.current is None
        with pytest.raises(SessionNotReady):
            s.check("cat")
        with pytest.raises(SessionNotReady):
            s.advance()

    def test_queue_holds_every_item(self, words, history, store, sample_items):
        s = _session(words, history, store)
        assert s.load()
        assert s.status == "active"
        assert sorted(s.state.queue) == sorted(i.id for i in sample_items)

    def test_stable_order_is_alphabetical(self, words, history, store):
        s = _session(words, history, store, order=OrderMode.STABLE)
        s.load()
        assert s.state.queue == ["apple", "book", "cat", "dog", "house", "water"]

    def test_shuffled_order_uses_rng(self, words, history, store):
        a = _session(words, history, store, rng=random.Random(5))
        a.load()
        b = _session(words, history, MemorySnapshotStore(), rng=random.Random(5))
        b.load()
        assert a.state.queue == b.state.queue

    def test_load_failure(self, words, history, store):
        words.fail = True
        s = _session(words, history, store)
        assert s.load() is False
        assert s.items == {}
        assert s.load_error
        assert s.status == "idle"
        with pytest.raises(SessionNotReady):
            s.check("x")

        words.fail = False
        assert s.load()
        assert s.load_error is None
        assert s.status == "active"

    def test_empty_item_set_is_not_completed(self, history, store):
        s = _session(FakeWords([]), history, store)
        assert s.load()
        assert s.status == "active"
        assert s.current is None
        assert not s.completed
        with pytest.raises(SessionComplete):
            s.check("anything")

    def test_only_own_items(self, sample_items, history, store):
        other = make_item("x", "other", ["სხვა"], user_id="u2")
        s = _session(FakeWords(sample_items + [other]), history, store)
        s.load()
        assert "x" not in s.state.queue


class TestRestore:
    def test_resumes_saved_session(self, words, history, store):
        s = _session(words, history, store, direction=H2D)
        s.load()
        first = s.current
        s.check(first.definitions[0])
        s.advance()
        queue = list(s.state.queue)

        resumed = _session(words, history, store)
        assert resumed.load()
        assert resumed.state.queue == queue
        assert resumed.state.direction == H2D
        assert resumed.state.correct_count == 1
        assert resumed.state.total_attempts == 1

    def test_pending_check_survives_reload(self, words, history, store):
        s = _session(words, history, store, direction=H2D, allow_reguess=True)
        s.load()
        front = s.current.id
        s.check("wrong")

        resumed = _session(words, history, store)
        resumed.load()
        assert resumed.state.last_correct is False
        with pytest.raises(AlreadyChecked):
            resumed.check("again")
        resumed.advance()
        assert resumed.state.queue[-1] == front

    def test_snapshot_with_deleted_items_discarded(self, words, history, store):
        s = _session(words, history, store)
        s.load()
        s.check("nope")
        words.delete_item("u1", "cat")

        fresh = _session(words, history, store)
        fresh.load()
        assert fresh.state.total_attempts == 0
        assert sorted(fresh.state.queue) == sorted(i.id for i in words.items)

    def test_snapshot_of_other_user_ignored(self, words, history, store, sample_items):
        s = _session(words, history, store)
        s.load()
        s.check("nope")

        for item in sample_items:
            item.user_id = "u2"
        other = PracticeSession("u2", words, history, store, rng=random.Random(1))
        other.load()
        assert other.state.total_attempts == 0

    def test_corrupt_snapshot_means_fresh_queue(self, words, history, store):
        store.write_snapshot("u1", "{{{")
        s = _session(words, history, store)
        assert s.load()
        assert len(s.state.queue) == len(words.items)

    def test_completed_snapshot_restores_completed(self, single, store, cat_item, history):
        s = single(False)
        s.check("dog")
        s.advance()
        assert s.completed

        again = _session(FakeWords([cat_item]), history, store)
        again.load()
        assert again.status == "completed"


class TestCheck:
    def test_correct_answer_counts(self, single):
        s = single(False)
        result = s.check("კატა")
        assert result.correct
        assert s.state.correct_count == 1
        assert s.state.total_attempts == 1
        assert s.state.mistakes == []

    def test_incorrect_answer_records_mistake(self, single):
        s = single(False)
        result = s.check("dog")
        assert not result.correct
        assert s.state.correct_count == 0
        assert s.state.total_attempts == 1
        mistake = s.state.mistakes[0]
        assert mistake.prompt == "cat"
        assert mistake.user_answer == "dog"
        assert mistake.correct_definitions == ["კატა"]

    def test_check_does_not_touch_queue(self, words, history, store):
        s = _session(words, history, store)
        s.load()
        queue = list(s.state.queue)
        s.check("whatever")
        assert s.state.queue == queue

    def test_empty_answer_changes_nothing(self, single):
        s = single(False)
        with pytest.raises(EmptyAnswerError):
            s.check("  ,  ")
        assert s.state.total_attempts == 0
        assert s.state.last_correct is None

    def test_cannot_check_twice(self, single):
        s = single(False)
        s.check("dog")
        with pytest.raises(AlreadyChecked):
            s.check("კატა")
        assert s.state.total_attempts == 1

    def test_multiple_answers_in_one_field(self, history, store):
        item = make_item("house", "house", ["სახლი", "შენობა"])
        s = _session(FakeWords([item]), history, store, direction=H2D)
        s.load()
        assert s.check("სახლი, შენობა").correct

    def test_headword_with_comma_answerable(self, history, store):
        item = make_item("w1", "well, well", ["აბა"])
        s = _session(FakeWords([item]), history, store, direction=D2H)
        s.load()
        result = s.check("Well,  well")
        assert result.correct
        assert result.user_answer == "Well,  well"

    def test_definition_with_comma_answerable(self, history, store):
        item = make_item("w1", "so-so", ["ასე, ისე", "საშუალოდ"])
        s = _session(FakeWords([item]), history, store, direction=H2D)
        s.load()
        assert s.check("ასე, ისე").correct

    def test_joined_answer_in_mistake(self, history, store):
        item = make_item("house", "house", ["სახლი", "შენობა"])
        s = _session(FakeWords([item]), history, store, direction=H2D)
        s.load()
        s.check(["სახლი", " კატა "])
        assert s.state.mistakes[0].user_answer == "სახლი, კატა"

    def test_reverse_direction_mistake(self, single):
        s = single(False)
        s.set_direction(D2H)
        s.check("dog")
        m = s.state.mistakes[0]
        assert m.prompt == "კატა"
        assert m.correct_definitions == ["cat"]

    def test_check_writes_through(self, single, store):
        s = single(False)
        s.check("კატა")
        saved = SessionPersistence(store, "u1").load()
        assert saved.correct_count == 1
        assert saved.total_attempts == 1


class TestAdvance:
    def test_reguess_requeues_missed_item(self, single):
        s = single(True)
        s.check("dog")
        s.advance()
        assert s.state.queue == ["cat"]
        assert not s.completed
        assert s.status == "active"

    def test_miss_without_reguess_completes(self, single):
        s = single(False)
        s.check("dog")
        s.advance()
        assert s.state.queue == []
        assert s.completed
        assert s.status == "completed"

    def test_correct_answer_not_requeued(self, single):
        s = single(True)
        s.check("კატა")
        s.advance()
        assert s.completed

    def test_missed_item_goes_to_back(self, words, history, store):
        s = _session(words, history, store, allow_reguess=True)
        s.load()
        front = s.current.id
        s.check("wrong")
        s.advance()
        assert s.state.queue[-1] == front
        assert len(s.state.queue) == len(words.items)

    def test_skip_without_check_completes_nothing(self, single):
        s = single(True)
        s.advance()
        assert s.state.queue == []
        assert not s.completed  # no attempts yet

    def test_advance_on_empty_queue(self, single):
        s = single(False)
        s.check("კატა")
        s.advance()
        with pytest.raises(SessionComplete):
            s.advance()

    def test_queue_only_references_loaded_items(self, words, history, store):
        s = _session(words, history, store, allow_reguess=True, direction=H2D)
        s.load()
        r = random.Random(3)
        for _ in range(20):
            if s.current is None:
                break
            answer = s.current.definitions[0] if r.random() < 0.5 else "wrong"
            s.check(answer)
            s.advance()
            assert all(q in s.items for q in s.state.queue)


class TestReconcile:
    def test_reload_drops_deleted_items(self, words, history, store):
        s = _session(words, history, store, order=OrderMode.STABLE)
        s.load()
        s.check("wrong")
        words.delete_item("u1", "dog")
        words.delete_item("u1", "apple")  # the current front
        assert s.reload()
        assert "dog" not in s.state.queue
        assert "apple" not in s.state.queue
        assert s.state.total_attempts == 1
        assert s.state.last_correct is None
        assert s.current.id == "book"

    def test_reload_emptying_queue_completes(self, single, history):
        s = single(False)
        s.check("dog")
        s.words.items = []
        s.reload()
        assert s.completed

    def test_reload_failure_keeps_session(self, words, history, store):
        s = _session(words, history, store)
        s.load()
        words.fail = True
        assert s.reload() is False
        assert s.status == "active"
        assert len(s.state.queue) == len(words.items)


class TestReset:
    def test_reset_clears_everything(self, words, history, store):
        s = _session(words, history, store, allow_reguess=True)
        s.load()
        s.check("wrong")
        s.advance()
        s.reset()
        assert s.state.correct_count == 0
        assert s.state.total_attempts == 0
        assert s.state.mistakes == []
        assert len(s.state.queue) == len(words.items)
        assert store.read_snapshot("u1") is None

    def test_reset_after_completion(self, single):
        s = single(False)
        s.check("კატა")
        s.advance()
        s.reset()
        assert s.status == "active"
        assert s.state.queue == ["cat"]


class TestFinish:
    def test_finish_records_history(self, single, history, store):
        s = single(False)
        s.check("dog")
        s.advance()
        result = s.finish()
        assert result.recorded
        assert result.error is None
        summary = history.records[0]
        assert summary.user_id == "u1"
        assert summary.direction == H2D
        assert summary.total_attempts == 1
        assert summary.correct_count == 0
        assert summary.mistakes[0].correct_definitions == ["კატა"]
        assert summary.timestamp
        assert s.state.total_attempts == 0
        assert s.state.queue == ["cat"]
        assert store.read_snapshot("u1") is None

    def test_history_failure_does_not_block_reset(self, cat_item, store):
        broken = FakeHistory(fail=True)
        s = _session(FakeWords([cat_item]), broken, store, direction=H2D)
        s.load()
        s.check("კატა")
        result = s.finish()
        assert not result.recorded
        assert "history unavailable" in result.error
        assert result.summary.correct_count == 1
        assert s.state.total_attempts == 0
        assert s.state.queue == ["cat"]


class TestSettingsChanges:
    def test_direction_change_keeps_queue_and_counters(self, words, history, store):
        s = _session(words, history, store)
        s.load()
        s.check("wrong")
        queue = list(s.state.queue)
        s.set_direction(H2D)
        assert s.state.queue == queue
        assert s.state.total_attempts == 1
        assert s.last_result is None
        assert SessionPersistence(store, "u1").load().direction == H2D

    def test_direction_rejects_unknown(self, words, history, store):
        s = _session(words, history, store)
        with pytest.raises(ValueError):
            s.set_direction("sideways")

    def test_order_change_rebuilds(self, words, history, store):
        s = _session(words, history, store)
        s.load()
        s.check("wrong")
        s.advance()
        s.set_order(OrderMode.STABLE)
        assert s.state.total_attempts == 0
        assert s.state.mistakes == []
        assert s.state.queue == ["apple", "book", "cat", "dog", "house", "water"]
        assert SessionPersistence(store, "u1").load().order == OrderMode.STABLE

    def test_reguess_toggle_persists(self, words, history, store):
        s = _session(words, history, store)
        s.load()
        s.set_allow_reguess(True)
        assert SessionPersistence(store, "u1").load().allow_reguess is True

    def test_to_dict(self, single):
        s = single(False)
        s.check("dog")
        data = s.to_dict()
        assert data["status"] == "active"
        assert data["current"]["prompt"] == "cat"
        assert data["checked"] is True
        assert data["last_result"]["accepted"] == ["კატა"]
        assert data["accuracy"] == 0
