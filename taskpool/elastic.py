"""A pool that starts workers on demand, up to a limit, and retires idle ones."""

from __future__ import annotations

import queue
import threading
import time
from typing import Callable, List, Optional, Sequence

from taskpool.counting import (
    _POLL_INTERVAL,
    WaitTimeoutError,
    _base_parser,
    _drain,
    _drain_before,
    _put_unless_cancelled,
    _report_completion,
)

Task = Callable[[], object]

__all__ = ["ElasticPool", "SubmitTimeoutError", "Task", "WaitTimeoutError", "main"]


class SubmitTimeoutError(TimeoutError):
    """Raised when no room for a task frees up before the submit deadline."""


class ElasticPool:
    """Grows its worker set with demand up to ``max_workers``.

    Each worker runs tasks taken from the shared buffer and exits after
    ``idle_timeout`` seconds without work or when the pool is cancelled.
    """

    def __init__(
        self,
        max_workers: int,
        idle_timeout: float = 10.0,
        buffer_size: int = 1000,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self.max_workers = max_workers
        self.idle_timeout = idle_timeout
        self._tasks: "queue.Queue[Task]" = queue.Queue(maxsize=buffer_size)
        self._done: "queue.Queue[None]" = queue.Queue(maxsize=buffer_size)
        self._cancelled = threading.Event()
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
        """Start the dispatcher that hands tasks to new workers."""
        if self._dispatcher is not None:
            raise RuntimeError("pool is already running")
        self._dispatcher = threading.Thread(target=self._dispatch, daemon=True)
        self._dispatcher.start()

    def _dispatch(self) -> None:
        while not self._cancelled.is_set():
            try:
                task = self._tasks.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            if self.active() < self.max_workers:
                self._start_worker(task)
            else:
                # Every worker is busy: return the task so a worker can pick it up.
                if not self._put(self._tasks, task):
                    return
                self._cancelled.wait(_POLL_INTERVAL)

    def _start_worker(self, task: Task) -> None:
        with self._lock:
            self._active += 1
            print("worker started", flush=True)
            thread = threading.Thread(target=self._work, args=(task,), daemon=True)
            self._workers.append(thread)
        thread.start()

    def _work(self, task: Task) -> None:
        try:
            current: Optional[Task] = task
            while current is not None:
                print("worker processing task", flush=True)
                current()
                print("worker finished task", flush=True)
                self._put(self._done, None)
                current = self._next_task()
        finally:
            with self._lock:
                self._active -= 1

    def _next_task(self) -> Optional[Task]:
        deadline = time.monotonic() + self.idle_timeout
        while True:
            if self._cancelled.is_set():
                print("worker received pool shutdown, exiting", flush=True)
                return None
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                print("worker idle timeout, exiting", flush=True)
                return None
            try:
                return self._tasks.get(timeout=min(remaining, _POLL_INTERVAL))
            except queue.Empty:
                continue

    def _put(self, target: "queue.Queue", item: object) -> bool:
        """Put ``item`` into ``target``; give up and return False once cancelled."""
        return _put_unless_cancelled(target, item, self._cancelled)

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("submit to stopped pool")

    def submit(self, task: Task) -> None:
        """Queue a task, blocking until the buffer has room."""
        self._check_open()
        self._tasks.put(task)

    def submit_with_timeout(self, task: Task, timeout: float) -> None:
        """Queue a task; raise SubmitTimeoutError if the buffer stays full past ``timeout``."""
        self._check_open()
        try:
            self._tasks.put(task, timeout=timeout)
        except queue.Full:
            raise SubmitTimeoutError("submit timed out") from None

    def wait(self, total: int) -> None:
        """Block until ``total`` tasks have been reported done."""
        _drain(self._done, total)

    def wait_with_timeout(self, total: int, timeout: float) -> None:
        """Block for ``total`` completions; WaitTimeoutError on deadline or cancel."""
        _drain_before(self._done, total, timeout, self._cancelled)

    def cancel(self) -> None:
        """Tell the dispatcher and every worker to exit."""
        self._cancelled.set()

    def stop(self) -> None:
        """Cancel the pool, refuse new tasks and wait for all workers to exit."""
        self.cancel()
        self._closed = True
        if self._dispatcher is not None:
            self._dispatcher.join()
        with self._lock:
            workers = list(self._workers)
        for thread in workers:
            thread.join()
        print("worker pool stopped", flush=True)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _base_parser("Run tasks on an elastic pool.", 100.0)
    parser.add_argument("--submit-timeout", type=float, default=2.0)
    args = parser.parse_args(argv)

    pool = ElasticPool(args.workers)
    pool.run()

    def make_task(index: int) -> Task:
        def task() -> None:
            print("processing task", index, flush=True)
            time.sleep(args.delay)

        return task

    def produce() -> None:
        for n in range(args.tasks):
            try:
                pool.submit_with_timeout(make_task(n), args.submit_timeout)
            except (SubmitTimeoutError, RuntimeError) as exc:
                print("task submit failed:", n, exc, flush=True)

    threading.Thread(target=produce, daemon=True).start()

    status = _report_completion(pool, args.tasks, args.timeout)
    pool.stop()
    return status


if __name__ == "__main__":
    raise SystemExit(main())