import threading
import time

import pytest

from taskpool.counting import WaitTimeoutError
from taskpool.queued import QueuedPool, main
from taskpool.results import ChannelBlockedError, Result, TaskCancelledError

MISSING = KeyError("missing")


def _raise_missing(ctx):
    raise MISSING


def _eventually(check, seconds=3.0):
    for _ in range(int(seconds / 0.01)):
        if check():
            return True
        time.sleep(0.01)
    return check()


@pytest.fixture
def queued():
    p = QueuedPool(2, idle_timeout=1.0)
    p.run()
    yield p
    p.stop()


@pytest.fixture
def single():
    p = QueuedPool(1, idle_timeout=1.0)
    p.run()
    release = threading.Event()
    yield p, release
    release.set()
    p.stop()


@pytest.mark.parametrize(
    "fn, value, error",
    [(lambda ctx: "answer", "answer", None), (_raise_missing, None, MISSING)],
    ids=["value", "error"],
)
def test_submit_outcome(queued, fn, value, error):
    outcome = queued.submit(fn).result(timeout=3)
    assert outcome.value == value
    assert outcome.error is error


def test_more_tasks_than_workers_all_complete(queued):
    futures = [queued.submit(lambda ctx, n=n: n) for n in range(20)]
    queued.wait_with_timeout(20, 5)
    assert sorted(f.result(timeout=3).value for f in futures) == list(range(20))
    assert queued.active() <= queued.max_workers


def test_single_worker_runs_in_submission_order(single):
    p, _ = single
    order = []
    futures = [p.submit(lambda ctx, n=n: order.append(n)) for n in range(6)]
    for f in futures:
        f.result(timeout=3)
    assert order == list(range(6))


def test_overflow_parks_in_waiting_queue(single):
    p, release = single
    futures = [p.submit(lambda ctx: release.wait(5)) for _ in range(5)]
    assert _eventually(lambda: p.waiting() >= 1)
    release.set()
    assert [f.result(timeout=5).value for f in futures] == [True] * 5
    assert p.waiting() == 0


def test_execute_timeout_reports_cancelled(queued):
    outcome = queued.submit(lambda ctx: ctx.wait(5), 0.05).result(timeout=3)
    assert isinstance(outcome.error, TaskCancelledError)
    assert outcome.value is None


def test_wait_with_timeout_raises_without_tasks(queued):
    with pytest.raises(WaitTimeoutError):
        queued.wait_with_timeout(1, 0.05)


@pytest.mark.parametrize(
    "second",
    [lambda p: p.submit(lambda ctx: None), lambda p: p.submit_with_timeout(lambda ctx: None, 1.0, 0)],
    ids=["submit", "submit_with_timeout"],
)
def test_full_buffer_raises_blocked(second):
    p = QueuedPool(1, buffer_size=1)
    p.submit(lambda ctx: None)
    with pytest.raises(ChannelBlockedError):
        second(p)
    assert p.active() == 0
    assert p.waiting() == 0
    p.stop()


def test_stop_fails_unrun_tasks():
    p = QueuedPool(1, idle_timeout=1.0)
    p.run()
    release = threading.Event()
    try:
        futures = [p.submit(lambda ctx: release.wait(5)) for _ in range(4)]
        assert _eventually(lambda: p.waiting() >= 1)
    finally:
        release.set()
        p.stop()
    outcomes = [f.result(timeout=3) for f in futures]
    assert all(isinstance(r.error, TaskCancelledError) for r in outcomes[1:] if r.value is not True)
    assert any(isinstance(r.error, TaskCancelledError) for r in outcomes)
    assert p.waiting() == 0


def test_idle_workers_exit():
    p = QueuedPool(3, idle_timeout=0.1)
    p.run()
    try:
        assert p.submit(lambda ctx: None).result(timeout=3) == Result(None, None)
        assert _eventually(lambda: p.active() == 0)
    finally:
        p.stop()


def test_submit_after_stop_raises():
    p = QueuedPool(1)
    p.stop()
    with pytest.raises(RuntimeError):
        p.submit(lambda ctx: None)


def test_main_completes(capsys):
    status = main(
        ["--workers", "2", "--tasks", "5", "--delay", "0.01", "--execute-timeout", "1", "--timeout", "5"]
    )
    printed = capsys.readouterr().out
    assert status == 0
    assert "all tasks completed" in printed
    assert "task result: task 4 done" in printed