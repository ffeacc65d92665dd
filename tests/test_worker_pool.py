import threading
import time

from models.dump_models  import ErrorPolicy
from services.exceptions import TaskCancelled
from services.worker_pool import BoundedWorkerPool


def test_completed_in_input_order():
    pool = BoundedWorkerPool(4)

    def task(item, cancel_event):
        time.sleep((5 - item) / 200)
        return item * 10

    outcome = pool.run([1, 2, 3, 4], task)
    assert outcome.completed == [(1, 10), (2, 20), (3, 30), (4, 40)]
    assert outcome.ok
    assert not outcome.aborted


def test_empty_batch():
    outcome = BoundedWorkerPool(4).run([], lambda item, ev: item)
    assert outcome.completed == []
    assert outcome.ok


def test_concurrency_never_exceeds_max_workers():
    lock    = threading.Lock()
    active  = [0]
    highest = [0]

    def task(item, cancel_event):
        with lock:
            active[0] += 1
            highest[0] = max(highest[0], active[0])
        time.sleep(0.01)
        with lock:
            active[0] -= 1

    BoundedWorkerPool(3).run(list(range(12)), task)
    assert highest[0] <= 3


def test_continue_collects_every_failure():
    pool = BoundedWorkerPool(4, ErrorPolicy.CONTINUE)

    def task(item, cancel_event):
        if item % 2:
            raise ValueError(f"bad {item}")
        return item

    outcome = pool.run([0, 1, 2, 3], task)
    assert [item for item, _ in outcome.completed] == [0, 2]
    assert sorted(f.item for f in outcome.failures) == [1, 3]
    assert not outcome.aborted
    assert isinstance(outcome.first_error, ValueError)


def test_abort_signals_siblings():
    pool    = BoundedWorkerPool(3, ErrorPolicy.ABORT)
    started = threading.Barrier(3)

    def task(item, cancel_event):
        started.wait(timeout=5)
        if item == "bad":
            raise RuntimeError("boom")
        if cancel_event.wait(timeout=5):
            raise TaskCancelled(item)
        return item

    outcome = pool.run(["a", "bad", "c"], task)
    assert outcome.aborted
    assert [f.item for f in outcome.failures] == ["bad"]
    assert sorted(outcome.cancelled) == ["a", "c"]
    assert outcome.completed == []


def test_abort_stops_remaining_tasks():
    pool = BoundedWorkerPool(1, ErrorPolicy.ABORT)

    def task(item, cancel_event):
        if item == 0:
            raise RuntimeError("first fails")
        if cancel_event.wait(timeout=5):
            raise TaskCancelled(item)
        return item

    outcome = pool.run([0, 1, 2], task)
    assert outcome.aborted
    assert outcome.completed == []
    assert sorted(outcome.skipped + outcome.cancelled) == [1, 2]
