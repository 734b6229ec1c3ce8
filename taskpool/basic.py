"""A fixed set of workers that double each job they receive."""

from __future__ import annotations

import argparse
import queue
import threading
import time
from typing import Iterable, List, Optional, Sequence

_DONE = object()


def _worker(
    worker_id: int,
    jobs: "queue.Queue[object]",
    results: "queue.Queue[int]",
    delay: float,
) -> None:
    while True:
        job = jobs.get()
        if job is _DONE:
            return
        time.sleep(delay)
        print("worker", worker_id, "finished job", job, flush=True)
        results.put(job * 2)


def run_jobs(jobs: Iterable[int], workers: int = 3, delay: float = 1.0) -> List[int]:
    """Process every job on ``workers`` threads; return results in completion order."""
    if workers < 1:
        raise ValueError("workers must be at least 1")
    pending = list(jobs)
    job_queue: "queue.Queue[object]" = queue.Queue()
    results: "queue.Queue[int]" = queue.Queue()

    threads = [
        threading.Thread(
            target=_worker, args=(n, job_queue, results, delay), daemon=True
        )
        for n in range(1, workers + 1)
    ]
    for thread in threads:
        thread.start()
    for job in pending:
        job_queue.put(job)
    for _ in threads:
        job_queue.put(_DONE)

    collected = [results.get() for _ in pending]
    for thread in threads:
        thread.join()
    return collected


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run jobs on a fixed worker set.")
    parser.add_argument("--jobs", type=int, default=5)
    parser.add_argument("--workers", type=int, default=3)
    parser.add_argument("--delay", type=float, default=1.0)
    args = parser.parse_args(argv)

    for result in run_jobs(range(1, args.jobs + 1), args.workers, args.delay):
        print(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())