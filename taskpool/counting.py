"""A fixed-size pool that counts completed tasks and can be cancelled."""

from __future__ import annotations

import argparse
import queue
import threading
import time
from typing import List, Optional, Sequence

_CLOSED = object()
_POLL_INTERVAL = 0.02


class WaitTimeoutError(TimeoutError):
    """Raised when waiting for tasks runs past its deadline or the pool is cancelled."""


def _put_unless_cancelled(
    target: "queue.Queue", item: object, cancelled: threading.Event
) -> bool:
    """Put ``item`` into ``target``, retrying while it is full; False once cancelled."""
    while not cancelled.is_set():
        try:
            target.put(item, timeout=_POLL_INTERVAL)
        except queue.Full:
            continue
        return True
    return False


def _drain(done: "queue.Queue", total: int) -> None:
    """Take ``total`` completion notices from ``done``, blocking as needed."""
    for _ in range(max(total, 0)):
        done.get()


def _drain_before(
    done: "queue.Queue", total: int, timeout: float, cancelled: threading.Event
) -> None:
    """Take ``total`` completion notices; raise WaitTimeoutError on deadline or cancel."""
    deadline = time.monotonic() + timeout
    count = 0
    while count < total:
        remaining = deadline - time.monotonic()
        if remaining <= 0 or cancelled.is_set():
            raise WaitTimeoutError("timed out")
        try:
            done.get(timeout=min(remaining, _POLL_INTERVAL))
        except queue.Empty:
            continue
        count += 1


def _base_parser(description: str, timeout: float) -> argparse.ArgumentParser:
    """Build a parser with the options every pool command shares."""
    parser = argparse.ArgumentParser(description=description)
    for flag, kind, default in (
        ("--workers", int, 5),
        ("--tasks", int, 100),
        ("--timeout", float, timeout),
        ("--delay", float, 0.1),
    ):
        parser.add_argument(flag, type=kind, default=default)
    return parser


def _report_completion(pool, total: int, timeout: float) -> int:
    """Wait for ``total`` tasks, print the outcome and return an exit status."""
    try:
        pool.wait_with_timeout(total, timeout)
    except WaitTimeoutError as exc:
        print(exc)
        pool.cancel()
        return 1
    print("all tasks completed")
    return 0


class CountingPool:
    """Runs a fixed number of workers; each finished task is counted by the waiters."""

    def __init__(self, worker_count: int, task_delay: float = 0.1) -> None:
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        self.worker_count = worker_count
        self.task_delay = task_delay
        self._tasks: "queue.Queue[object]" = queue.Queue(maxsize=1)
        self._done: "queue.Queue[None]" = queue.Queue()
        self._cancelled = threading.Event()
        self._closed = False
        self._threads: List[threading.Thread] = []

    def run(self) -> None:
        """Start the worker threads."""
        if self._threads:
            raise RuntimeError("pool is already running")
        self._threads = [
            threading.Thread(target=self._work, args=(n,), daemon=True)
            for n in range(self.worker_count)
        ]
        for thread in self._threads:
            thread.start()

    def _work(self, worker_id: int) -> None:
        while True:
            if self._cancelled.is_set():
                print("worker", worker_id, "exiting", flush=True)
                return
            try:
                task = self._tasks.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            if task is _CLOSED:
                return
            print("worker", worker_id, "started", task, flush=True)
            time.sleep(self.task_delay)
            print("worker", worker_id, "finished", task, flush=True)
            self._done.put(None)

    def _put(self, item: object) -> None:
        if not _put_unless_cancelled(self._tasks, item, self._cancelled):
            raise RuntimeError("pool has been cancelled")

    def submit(self, task: object) -> None:
        """Hand a task to the workers, blocking until one can take it."""
        if self._closed:
            raise RuntimeError("submit to closed pool")
        self._put(task)

    def close(self) -> None:
        """Stop accepting tasks; workers exit once the submitted ones are done."""
        if self._closed:
            raise RuntimeError("pool is already closed")
        self._closed = True
        for _ in range(self.worker_count):
            try:
                self._put(_CLOSED)
            except RuntimeError:
                return

    def wait(self, total: int) -> None:
        """Block until ``total`` tasks have completed."""
        _drain(self._done, total)

    def wait_with_timeout(self, total: int, timeout: float) -> None:
        """Block until ``total`` tasks complete or fail with WaitTimeoutError."""
        _drain_before(self._done, total, timeout, self._cancelled)

    def cancel(self) -> None:
        """Tell every worker to exit."""
        self._cancelled.set()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _base_parser("Run tasks on a counting pool.", 1.0).parse_args(argv)

    pool = CountingPool(args.workers, args.delay)
    pool.run()

    def produce() -> None:
        try:
            for n in range(args.tasks):
                pool.submit(n)
            pool.close()
        except RuntimeError:
            pass

    threading.Thread(target=produce, daemon=True).start()
    return _report_completion(pool, args.tasks, args.timeout)


if __name__ == "__main__":
    raise SystemExit(main())