import threading
import time

import pytest

from taskpool.counting import WaitTimeoutError
from taskpool.elastic import SubmitTimeoutError
from taskpool.results import (
    ChannelBlockedError,
    Context,
    Result,
    ResultPool,
    Task,
    TaskCancelledError,
    main,
)

BOOM = ValueError("boom")


def _fail(ctx):
    raise BOOM


@pytest.fixture
def pool():
    p = ResultPool(2, idle_timeout=1.0)
    p.run()
    yield p
    p.stop()


def test_context_cancel_marks_done():
    ctx = Context()
    assert ctx.done() is False
    ctx.cancel()
    assert ctx.done() is True
    assert ctx.wait(0.01) is True


def test_context_child_follows_parent_but_not_reverse():
    parent = Context()
    child = Context(parent)
    sibling = Context(parent)
    sibling.cancel()
    assert (parent.done(), child.done()) == (False, False)
    parent.cancel()
    assert child.done() is True


@pytest.mark.parametrize("timeout, expected", [(0.05, True), (None, False)])
def test_context_wait(timeout, expected):
    ctx = Context(timeout=timeout) if timeout else Context()
    assert ctx.wait(2.0 if expected else 0.05) is expected
    assert ctx.done() is expected


def test_result_defaults():
    assert Result() == Result(None, None)


def test_task_gets_its_own_future():
    first, second = Task(None), Task(None)
    assert first.future is not second.future
    assert first.timeout == 0


@pytest.mark.parametrize(
    "fn, expected",
    [(lambda ctx: "answer", Result("answer", None)), (_fail, Result(None, BOOM))],
    ids=["value", "error"],
)
def test_submit_delivers_result(pool, fn, expected):
    assert pool.submit(fn).result(timeout=3) == expected


def test_task_receives_live_context(pool):
    seen = []
    pool.submit(lambda ctx: seen.append(ctx)).result(timeout=3)
    assert isinstance(seen[0], Context)
    assert seen[0].done() is False


@pytest.mark.parametrize(
    "fn, execute_timeout, value, cancelled",
    [(lambda ctx: ctx.wait(5) and "late", 0.05, None, True), (lambda ctx: 7, 2.0, 7, False)],
    ids=["expired", "in_time"],
)
def test_execute_timeout(pool, fn, execute_timeout, value, cancelled):
    result = pool.submit_with_timeout(fn, 1.0, execute_timeout).result(timeout=3)
    assert result.value == value
    assert isinstance(result.error, TaskCancelledError) is cancelled


def test_wait_counts_completions(pool):
    futures = [pool.submit(lambda ctx, n=n: n) for n in range(4)]
    pool.wait(4)
    assert sorted(f.result(timeout=3).value for f in futures) == [0, 1, 2, 3]


def test_wait_with_timeout_raises_without_tasks(pool):
    with pytest.raises(WaitTimeoutError):
        pool.wait_with_timeout(1, 0.05)


def test_cancel_stops_running_task(pool):
    started = threading.Event()

    def fn(ctx):
        started.set()
        ctx.wait(5)
        return "x"

    future = pool.submit(fn)
    assert started.wait(3)
    pool.cancel()
    assert isinstance(future.result(timeout=3).error, TaskCancelledError)
    with pytest.raises(WaitTimeoutError):
        pool.wait_with_timeout(1, 1.0)


def test_active_never_exceeds_max(pool):
    peaks = []

    def fn(ctx):
        peaks.append(pool.active())
        time.sleep(0.02)

    for future in [pool.submit(fn) for _ in range(6)]:
        future.result(timeout=5)
    assert len(peaks) == 6
    assert max(peaks) <= pool.max_workers


def test_idle_workers_exit():
    p = ResultPool(2, idle_timeout=0.1)
    p.run()
    try:
        assert p.submit(lambda ctx: None).result(timeout=3) == Result(None, None)
        end = time.monotonic() + 3.0
        while p.active() and time.monotonic() < end:
            time.sleep(0.01)
        assert p.active() == 0
    finally:
        p.stop()


def test_max_workers_clamped_to_one():
    p = ResultPool(0)
    assert p.max_workers == 1
    p.stop()


def test_invalid_buffer_size():
    with pytest.raises(ValueError):
        ResultPool(1, buffer_size=0)


def test_full_buffer_raises_blocked():
    p = ResultPool(1, buffer_size=1)
    p.submit_with_timeout(lambda ctx: None, 1.0, 0)
    with pytest.raises(ChannelBlockedError):
        p.submit_with_timeout(lambda ctx: None, 1.0, 0)
    with pytest.raises(SubmitTimeoutError):
        p.submit_with_timeout(lambda ctx: None, 0, 0)
    p.stop()


def test_stop_fails_pending_and_refuses_new():
    p = ResultPool(1)
    futures = [p.submit(lambda ctx: 1) for _ in range(2)]
    p.stop()
    assert all(isinstance(f.result(timeout=1).error, TaskCancelledError) for f in futures)
    with pytest.raises(RuntimeError):
        p.submit(lambda ctx: 1)


def test_run_twice_raises(pool):
    with pytest.raises(RuntimeError):
        pool.run()


def test_main_completes(capsys):
    argv = "--workers 2 --tasks 3 --delay 0.01 --execute-timeout 1 --timeout 5".split()
    assert main(argv) == 0
    out = capsys.readouterr().out
    assert "all tasks completed" in out
    assert "task result: task 2 done" in out