"""Atomicity and per-pair serialisation of submit_review."""

import gc
import sqlite3
import threading
import time

import pytest

from technique_review import review_queue
from technique_review.errors import PersistenceError
from technique_review.models import QueueStatus
from technique_review.store import SQLiteReviewTransaction


def test_failure_between_item_and_progress_update_rolls_back(manager, store, monkeypatch, complete_node):
    complete_node("ana", "armbar")
    item_before = store.get_queue_item("ana", "armbar")
    progress_before = store.get_progress("ana", "armbar")

    def _boom(self, progress):
        raise RuntimeError("simulated crash after queue item update")

    monkeypatch.setattr(SQLiteReviewTransaction, "save_progress", _boom)

    with pytest.raises(RuntimeError):
        manager.submit_review("ana", "armbar", 4)

    assert store.get_queue_item("ana", "armbar") == item_before
    assert store.get_progress("ana", "armbar") == progress_before
    assert store.review_dates("ana") == []


def test_storage_error_is_wrapped_and_rolled_back(manager, store, monkeypatch, complete_node):
    complete_node("ana", "armbar")
    item_before = store.get_queue_item("ana", "armbar")

    def _locked(self, progress):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(SQLiteReviewTransaction, "save_progress", _locked)

    with pytest.raises(PersistenceError) as excinfo:
        manager.submit_review("ana", "armbar", 5)

    assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)
    item_after = store.get_queue_item("ana", "armbar")
    assert item_after == item_before
    assert item_after.status == QueueStatus.pending


def test_concurrent_submissions_for_same_pair_are_serialised(manager, store, monkeypatch, complete_node):
    complete_node("ana", "armbar")

    calls = []
    original = review_queue.next_interval

    def _slow_next_interval(current_interval, ease_factor, score):
        calls.append((current_interval, ease_factor, int(score)))
        time.sleep(0.05)
        return original(current_interval, ease_factor, score)

    monkeypatch.setattr(review_queue, "next_interval", _slow_next_interval)

    barrier = threading.Barrier(2)
    errors = []

    def _submit():
        barrier.wait()
        try:
            manager.submit_review("ana", "armbar", 4)
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=_submit) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert errors == []
    # the second submission saw the first one's result, never the stale item
    assert calls == [(0, 2.5, 4), (1, 2.5, 4)]
    assert store.get_queue_item("ana", "armbar").interval_days == 3
    assert store.get_progress("ana", "armbar").total_reviews == 2


def test_different_pairs_do_not_wait_for_each_other(manager, store, complete_node):
    complete_node("ana", "armbar")
    complete_node("ana", "triangle")

    results = []
    held = manager._locks.for_pair("ana", "armbar")  # pylint: disable=protected-access
    with held:
        worker = threading.Thread(target=lambda: results.append(manager.submit_review("ana", "triangle", 4)))
        worker.start()
        worker.join(timeout=5)
        assert not worker.is_alive()

    assert len(results) == 1
    assert results[0].item.node_id == "triangle"
    assert store.get_queue_item("ana", "armbar").interval_days == 0


def test_pair_locks_are_released_once_unused(manager, complete_node):
    locks = manager._locks  # pylint: disable=protected-access
    complete_node("ana", "armbar")
    manager.submit_review("ana", "armbar", 4)
    manager.skip_review("ana", "armbar")
    gc.collect()
    assert len(locks) == 0

    held = locks.for_pair("ana", "armbar")
    assert len(locks) == 1
    assert locks.for_pair("ana", "armbar") is held
    del held
    gc.collect()
    assert len(locks) == 0
