import dataclasses
import threading

import pytest

from catalog_sync.errors import InvalidTransition
from catalog_sync.progress import COMPLETED, ERROR, IDLE, RUNNING, ProgressTracker


def test_new_tracker_is_idle():
    progress = ProgressTracker().snapshot()
    assert progress.status == IDLE
    assert progress.started_at is None


def test_start_zeroes_and_stamps():
    tracker = ProgressTracker()
    tracker.start()
    tracker.add(fetched_products=5, saved_products=3, created_products=3)
    tracker.complete()

    progress = tracker.start()

    assert progress.status == RUNNING
    assert progress.fetched_products == 0
    assert progress.saved_products == 0
    assert progress.started_at is not None
    assert progress.completed_at is None


def test_snapshots_are_immutable_and_detached():
    tracker = ProgressTracker()
    tracker.start()
    before = tracker.snapshot()
    tracker.add(fetched_products=2)

    assert before.fetched_products == 0
    assert tracker.snapshot().fetched_products == 2
    with pytest.raises(dataclasses.FrozenInstanceError):
        before.fetched_products = 10


def test_complete_and_fail_stamp_completion():
    tracker = ProgressTracker()
    tracker.start()
    done = tracker.complete()
    assert done.status == COMPLETED
    assert done.completed_at is not None

    tracker.start()
    failed = tracker.fail("auth failure")
    assert failed.status == ERROR
    assert failed.error_message == "auth failure"


def test_invalid_transitions_are_rejected():
    tracker = ProgressTracker()
    with pytest.raises(InvalidTransition):
        tracker.add(errors=1)
    with pytest.raises(InvalidTransition):
        tracker.complete()

    tracker.start()
    with pytest.raises(InvalidTransition):
        tracker.start()
    with pytest.raises(InvalidTransition):
        tracker.update(status=COMPLETED)

    tracker.complete()
    with pytest.raises(InvalidTransition):
        tracker.fail("late")


def test_unknown_counter_is_rejected():
    tracker = ProgressTracker()
    tracker.start()
    with pytest.raises(ValueError):
        tracker.add(current_page=1)


def test_on_change_receives_every_snapshot():
    seen = []
    tracker = ProgressTracker(on_change=seen.append)
    tracker.start()
    tracker.update(current_page=1, cursor="abc")
    tracker.complete()

    assert [progress.status for progress in seen] == [RUNNING, RUNNING, COMPLETED]
    assert seen[1].cursor == "abc"


def test_concurrent_adds_are_not_lost():
    tracker = ProgressTracker()
    tracker.start()

    def _work() -> None:
        for _ in range(500):
            tracker.add(fetched_products=1, saved_products=1, created_products=1)

    threads = [threading.Thread(target=_work) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    progress = tracker.snapshot()
    assert progress.fetched_products == 2000
    assert progress.saved_products == progress.created_products + progress.updated_products


def test_to_dict_serializes_dates():
    tracker = ProgressTracker()
    tracker.start()
    payload = tracker.complete().to_dict()

    assert payload["status"] == COMPLETED
    assert isinstance(payload["started_at"], str)
    assert isinstance(payload["completed_at"], str)
