"""A pool whose tasks receive a cancellable context and report a result."""

from __future__ import annotations

import argparse
import queue
import threading
import time
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional, Sequence

from taskpool.counting import WaitTimeoutError
from taskpool.elastic import SubmitTimeoutError

_POLL_INTERVAL = 0.02


class TaskCancelledError(Exception):
    """Reported when a task outlives its execution timeout or the pool is cancelled."""


class ChannelBlockedError(RuntimeError):
    """Raised when a task cannot be queued at once because the buffer is full."""


class Context:
    """A cancellation signal with an optional deadline, inherited from a parent."""

    def __init__(self, parent: Optional["Context"] = None, timeout: Optional[float] = None) -> None:
        self._parent = parent
        self._event = threading.Event()
        self._deadline = None if timeout is None else time.monotonic() + timeout

    def cancel(self) -> None:
        """Mark this context, and every context derived from it, as done."""
        self._event.set()

    def done(self) -> bool:
        """Return True once cancelled, past the deadline, or the parent is done."""
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        if self._parent is not None and self._parent.done():
            self._event.set()
            return True
        return False

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the context is done or ``timeout`` passes; return whether it is done."""
        end = None if timeout is None else time.monotonic() + timeout
        while not self.done():
            now = time.monotonic()
            step = _POLL_INTERVAL
            if self._deadline is not None:
                step = min(step, max(self._deadline - now, 0.0))
            if end is not None:
                remaining = end - now
                if remaining <= 0:
                    return False
                step = min(step, remaining)
            self._event.wait(step)
        return True


@dataclass(frozen=True)
class Result:
    """Outcome of a task: its value, or the error it ended with."""

    value: Any = None
    error: Optional[BaseException] = None


TaskFunction = Callable[[Context], Any]


@dataclass
class Task:
    """A function to run, the future its result goes to, and its execution timeout."""

    fn: Optional[TaskFunction]
    future: "Future[Result]" = field(default_factory=Future)
    timeout: float = 0.0


def _resolve(task: Task, result: Result) -> None:
    try:
        task.future.set_result(result)
    except InvalidStateError:
        pass


def _cancelled_result() -> Result:
    return Result(None, TaskCancelledError("task timed out or cancelled"))


def _drain(source: "queue.Queue[Task]") -> Iterator[Task]:
    while True:
        try:
            yield source.get_nowait()
        except queue.Empty:
            return


class ResultPool:
    """Starts workers on demand up to ``max_workers``; every task yields a Result.

    Submitting returns a future that resolves to a :class:`Result`. A task
    gets a :class:`Context` that is done when its execution timeout passes
    or the pool is cancelled; a task that finishes after that point is
    reported as :class:`TaskCancelledError`.
    """

    def __init__(self, max_workers: int, idle_timeout: float = 5.0, buffer_size: int = 1000) -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self.max_workers = max(max_workers, 1)
        self.idle_timeout = idle_timeout
        self._context = Context()
        self._tasks: "queue.Queue[Task]" = queue.Queue(maxsize=buffer_size)
        self._done: "queue.Queue[None]" = queue.Queue(maxsize=buffer_size)
        self._feed: "queue.Queue[Task]" = self._tasks
        self._closed = False
        self._lock = threading.Lock()
        self._active = 0
        self._workers: List[threading.Thread] = []
        self._dispatcher: Optional[threading.Thread] = None

    def active(self) -> int:
        """Return the number of live workers."""
        with self._lock:
            return self._active

    def run(self) -> None:
        """Start the dispatcher that hands tasks to workers."""
        if self._dispatcher is not None:
            raise RuntimeError("pool is already running")
        self._dispatcher = threading.Thread(target=self._dispatch, daemon=True)
        self._dispatcher.start()

    def _dispatch(self) -> None:
        while not self._context.done():
            try:
                task = self._tasks.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            if self.active() < self.max_workers:
                self._start_worker(task)
            else:
                # Every worker is busy: return the task so a worker can pick it up.
                if not self._put(self._tasks, task):
                    _resolve(task, _cancelled_result())
                    return
                self._context.wait(_POLL_INTERVAL)

    def _start_worker(self, task: Task) -> None:
        with self._lock:
            self._active += 1
            thread = threading.Thread(target=self._work, args=(task,), daemon=True)
            self._workers.append(thread)
        thread.start()

    def _work(self, task: Task) -> None:
        try:
            current: Optional[Task] = task
            while current is not None:
                if current.fn is not None:
                    self._handle(current)
                current = self._next_task()
        finally:
            with self._lock:
                self._active -= 1

    def _next_task(self) -> Optional[Task]:
        deadline = time.monotonic() + self.idle_timeout
        while True:
            if self._context.done():
                return None
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            try:
                return self._feed.get(timeout=min(remaining, _POLL_INTERVAL))
            except queue.Empty:
                continue

    def _handle(self, task: Task) -> None:
        ctx = self._context
        if task.timeout > 0:
            ctx = Context(self._context, task.timeout)
        value: Any = None
        error: Optional[BaseException] = None
        try:
            value = task.fn(ctx)  # type: ignore[misc]
        except Exception as exc:
            error = exc
        result = _cancelled_result() if ctx.done() else Result(value, error)
        if ctx is not self._context:
            ctx.cancel()
        _resolve(task, result)
        self._put(self._done, None)

    def _put(self, target: "queue.Queue", item: object) -> bool:
        """Put ``item`` into ``target``; give up and return False once cancelled."""
        while not self._context.done():
            try:
                target.put(item, timeout=_POLL_INTERVAL)
                return True
            except queue.Full:
                continue
        return False

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("submit to stopped pool")

    def submit(self, fn: TaskFunction) -> "Future[Result]":
        """Queue a task without an execution timeout, blocking until the buffer has room."""
        self._check_open()
        task = Task(fn)
        self._tasks.put(task)
        return task.future

    def submit_with_timeout(
        self, fn: TaskFunction, submit_timeout: float, execute_timeout: float
    ) -> "Future[Result]":
        """Queue a task at once; raise if the buffer is full.

        With a non-positive ``submit_timeout`` a full buffer raises
        SubmitTimeoutError, otherwise ChannelBlockedError.
        """
        self._check_open()
        task = Task(fn, timeout=execute_timeout)
        try:
            self._tasks.put_nowait(task)
        except queue.Full:
            if submit_timeout <= 0:
                raise SubmitTimeoutError("submit timed out") from None
            raise ChannelBlockedError("channel closed or blocked") from None
        return task.future

    def wait(self, total: int) -> None:
        """Block until ``total`` tasks have completed."""
        for _ in range(max(total, 0)):
            self._done.get()

    def wait_with_timeout(self, total: int, timeout: float) -> None:
        """Block until ``total`` tasks complete; raise WaitTimeoutError on deadline or cancel."""
        deadline = time.monotonic() + timeout
        count = 0
        while count < total:
            remaining = deadline - time.monotonic()
            if remaining <= 0 or self._context.done():
                raise WaitTimeoutError("timed out")
            try:
                self._done.get(timeout=min(remaining, _POLL_INTERVAL))
            except queue.Empty:
                continue
            count += 1

    def cancel(self) -> None:
        """Tell the dispatcher, every worker and every running task to stop."""
        self._context.cancel()

    def _pending(self) -> Iterator[Task]:
        yield from _drain(self._tasks)

    def stop(self) -> None:
        """Cancel the pool, wait for all workers, and fail tasks that never ran."""
        self.cancel()
        self._closed = True
        if self._dispatcher is not None:
            self._dispatcher.join()
        with self._lock:
            workers = list(self._workers)
        for thread in workers:
            thread.join()
        for task in self._pending():
            _resolve(task, _cancelled_result())
        print("worker pool stopped", flush=True)


def _make_task(index: int, delay: float) -> TaskFunction:
    def task(ctx: Context) -> str:
        print("processing task", index, flush=True)
        time.sleep(delay)
        return f"task {index} done"

    return task


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run tasks that report results.")
    parser.add_argument("--workers", type=int, default=5)
    parser.add_argument("--tasks", type=int, default=500)
    parser.add_argument("--delay", type=float, default=0.1)
    parser.add_argument("--submit-timeout", type=float, default=2.0)
    parser.add_argument("--execute-timeout", type=float, default=0.12)
    parser.add_argument("--timeout", type=float, default=100.0)
    args = parser.parse_args(argv)

    pool = ResultPool(args.workers)
    pool.run()
    futures: List["Future[Result]"] = []

    def produce() -> None:
        for n in range(args.tasks):
            try:
                futures.append(
                    pool.submit_with_timeout(
                        _make_task(n, args.delay), args.submit_timeout, args.execute_timeout
                    )
                )
            except RuntimeError as exc:
                print("task submit failed:", n, exc, flush=True)

    producer = threading.Thread(target=produce, daemon=True)
    producer.start()

    status = 0
    try:
        pool.wait_with_timeout(args.tasks, args.timeout)
    except WaitTimeoutError as exc:
        print(exc)
        pool.cancel()
        status = 1
    else:
        print("all tasks completed")

    pool.stop()
    producer.join()
    for future in futures:
        result = future.result()
        if result.error is not None:
            print("task failed:", result.error)
        else:
            print("task result:", result.value)
    return status


if __name__ == "__main__":
    raise SystemExit(main())