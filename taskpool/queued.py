"""A result pool that parks overflow tasks in a waiting queue instead of re-queuing them."""

from __future__ import annotations

import argparse
import queue
import threading
import time
from concurrent.futures import Future
from typing import Iterator, List, Optional, Sequence

from taskpool.counting import WaitTimeoutError
from taskpool.queue import Queue
from taskpool.results import (
    ChannelBlockedError,
    Context,
    Result,
    ResultPool,
    Task,
    TaskFunction,
)

_POLL_INTERVAL = 0.02


class QueuedPool(ResultPool):
    """Hands tasks to workers through a bounded worker queue.

    New workers are started while fewer than ``max_workers`` are alive.
    Beyond that, tasks go to the worker queue, and when that is full they
    wait, in order, in an unbounded waiting queue.
    """

    def __init__(self, max_workers: int, idle_timeout: float = 5.0, buffer_size: int = 1000) -> None:
        super().__init__(max_workers, idle_timeout, buffer_size)
        self._worker_queue: "queue.Queue[Task]" = queue.Queue(maxsize=self.max_workers)
        self._waiting: Queue[Task] = Queue()
        self._feed = self._worker_queue

    def run(self) -> None:
        """Start dispatching submitted tasks to workers."""
        super().run()

    def active(self) -> int:
        """Return the number of live workers."""
        return super().active()

    def waiting(self) -> int:
        """Return the number of tasks parked in the waiting queue."""
        return len(self._waiting)

    def cancel(self) -> None:
        """Tell the dispatcher and all workers to quit."""
        super().cancel()

    def stop(self) -> None:
        """Cancel the pool, fail unrun tasks and wait for workers to exit."""
        super().stop()

    def wait(self, total: int) -> None:
        """Block until ``total`` tasks have completed."""
        super().wait(total)

    def wait_with_timeout(self, total: int, timeout: float) -> None:
        """Block until ``total`` tasks complete; raise WaitTimeoutError otherwise."""
        super().wait_with_timeout(total, timeout)

    def _dispatch(self) -> None:
        while not self._context.done():
            if not self._waiting.is_empty():
                self._process_waiting()
                continue
            try:
                task = self._tasks.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            if not self._hand_off(task):
                self._waiting.offer(task)

    def _process_waiting(self) -> None:
        if self._hand_off(self._waiting.first()):
            self._waiting.poll()
            return
        try:
            self._waiting.offer(self._tasks.get(timeout=_POLL_INTERVAL))
        except queue.Empty:
            pass

    def _hand_off(self, task: Task) -> bool:
        if self.active() < self.max_workers:
            self._start_worker(task)
            return True
        try:
            self._worker_queue.put_nowait(task)
        except queue.Full:
            return False
        return True

    def _pending(self) -> Iterator[Task]:
        yield from super()._pending()
        while True:
            try:
                yield self._worker_queue.get_nowait()
            except queue.Empty:
                break
        while not self._waiting.is_empty():
            yield self._waiting.poll()

    def submit(self, fn: TaskFunction, execute_timeout: float = 0.0) -> "Future[Result]":
        """Queue a task at once; raise ChannelBlockedError if the buffer is full."""
        self._check_open()
        task = Task(fn, timeout=execute_timeout)
        try:
            self._tasks.put_nowait(task)
        except queue.Full:
            raise ChannelBlockedError("channel closed or blocked") from None
        return task.future

    def submit_with_timeout(
        self, fn: TaskFunction, submit_timeout: float, execute_timeout: float
    ) -> "Future[Result]":
        """Queue a task with an execution timeout; raise if it cannot be queued."""
        return super().submit_with_timeout(fn, submit_timeout, execute_timeout)


def _make_task(index: int, delay: float) -> TaskFunction:
    def task(ctx: Context) -> str:
        print("processing task", index, flush=True)
        time.sleep(delay)
        return f"task {index} done"

    return task


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run tasks on a queued pool.")
    parser.add_argument("--workers", type=int, default=100)
    parser.add_argument("--tasks", type=int, default=1000)
    parser.add_argument("--delay", type=float, default=0.1)
    parser.add_argument("--submit-timeout", type=float, default=2.0)
    parser.add_argument("--execute-timeout", type=float, default=0.12)
    parser.add_argument("--timeout", type=float, default=100.0)
    args = parser.parse_args(argv)

    pool = QueuedPool(args.workers)
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

    producer.join()
    if status:
        pool.stop()
    for future in futures:
        result = future.result()
        if result.error is not None:
            print("task failed:", result.error)
        else:
            print("task result:", result.value)
    if not status:
        pool.stop()
    return status


if __name__ == "__main__":
    raise SystemExit(main())