# taskpool

A small set of thread-based worker pools. Each one adds a feature to the one before it.

| Module | Main name | What it does |
| --- | --- | --- |
| `taskpool.basic` | `run_jobs` | Runs jobs on a fixed number of worker threads and returns each job doubled |
| `taskpool.counting` | `CountingPool` | A fixed worker set that counts finished tasks, waits with a timeout and can be cancelled |
| `taskpool.elastic` | `ElasticPool` | Starts workers on demand up to a limit, retires idle ones, submits with a timeout |
| `taskpool.results` | `ResultPool` | Tasks take a `Context` and produce a `Result`, each with its own execution timeout |
| `taskpool.queued` | `QueuedPool` | Like `ResultPool`, but overflow tasks wait in order in a FIFO `Queue` |
| `taskpool.queue` | `Queue` | A thread-safe FIFO queue |

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Usage

### Fixed workers

```python
from taskpool.basic import run_jobs

print(run_jobs([1, 2, 3], workers=2, delay=0.1))  # e.g. [2, 4, 6], in completion order
```

`workers` below 1 raises `ValueError`.

### Counting pool

```python
from taskpool.counting import CountingPool, WaitTimeoutError

pool = CountingPool(worker_count=3, task_delay=0.05)
pool.run()
# submit blocks until a worker takes the task, so feed it from another thread
# when there are more tasks than workers.
pool.submit("a")
pool.wait_with_timeout(1, 2.0)   # raises WaitTimeoutError on deadline or cancel
pool.close()                     # workers exit after the submitted tasks
```

The tasks are not called: each worker prints it, sleeps `task_delay` seconds
and counts it as done. `cancel()` tells every worker to exit; `submit` after
`close()` or after cancelling raises `RuntimeError`.

### Elastic pool

```python
from taskpool.elastic import ElasticPool, SubmitTimeoutError

pool = ElasticPool(max_workers=4, idle_timeout=10.0, buffer_size=1000)
pool.run()
pool.submit_with_timeout(lambda: print("hi"), 2.0)  # SubmitTimeoutError if the buffer stays full
pool.wait_with_timeout(1, 5.0)
print(pool.active())
pool.stop()                      # cancels, refuses new tasks, joins all workers
```

Tasks are callables taking no arguments. A worker exits after `idle_timeout`
seconds without work or when the pool is cancelled.

### Result pool

```python
from taskpool.results import ResultPool

pool = ResultPool(max_workers=4)
pool.run()

def job(ctx):
    return "done"

futures = [pool.submit(job) for _ in range(10)]
pool.wait_with_timeout(10, 5.0)
for future in futures:
    result = future.result()     # a Result with .value and .error
    print(result.value, result.error)
pool.stop()
```

- `submit(fn)` blocks until the buffer has room and returns a
  `concurrent.futures.Future` that resolves to a `Result`.
- `submit_with_timeout(fn, submit_timeout, execute_timeout)` queues the task at
  once. If the buffer is full it raises `SubmitTimeoutError` when
  `submit_timeout` is not positive, otherwise `ChannelBlockedError`.
- Each task receives a `Context`. With a positive `execute_timeout` the context
  is done once that many seconds pass; it is also done when the pool is
  cancelled. A task that returns after its context is done gets a `Result`
  whose `error` is a `TaskCancelledError`. An exception raised by the task is
  stored in `Result.error`.
- `stop()` cancels the pool, waits for the workers and resolves every task
  that never ran with `TaskCancelledError`.

`Context(parent=None, timeout=None)` offers `cancel()`, `done()` and
`wait(timeout=None)`.

### Queued pool

`QueuedPool` has the same interface as `ResultPool`, with two differences:
`submit(fn, execute_timeout=0.0)` never blocks and raises `ChannelBlockedError`
when the buffer is full, and `waiting()` reports how many tasks are parked in
the waiting queue because every worker is busy.

### Queue

`taskpool.queue.Queue` is a thread-safe FIFO with `offer`, `poll`, `first`,
`is_empty` and `len()`. `poll` and `first` raise `IndexError` on an empty queue.

## Commands

Each pool has a demonstration command:

```
taskpool-basic      [--jobs 5] [--workers 3] [--delay 1.0]
taskpool-counting   [--workers 5] [--tasks 100] [--timeout 1.0] [--delay 0.1]
taskpool-elastic    [--workers 5] [--tasks 100] [--timeout 100.0] [--delay 0.1] [--submit-timeout 2.0]
taskpool-results    [--workers 5] [--tasks 500] [--delay 0.1] [--submit-timeout 2.0] [--execute-timeout 0.12] [--timeout 100.0]
taskpool-queued     [--workers 100] [--tasks 1000] [--delay 0.1] [--submit-timeout 2.0] [--execute-timeout 0.12] [--timeout 100.0]
```

All but `taskpool-basic` exit with status 1 when waiting for the tasks times out.

## What it does not do

- All pools run threads in a single process; there is no process pool or
  distribution across machines.
- Tasks are held in memory only and are lost when the process ends.
- Cancellation is cooperative: a running task is never interrupted. It should
  check `ctx.done()` itself; otherwise it runs to the end and its result is
  replaced by `TaskCancelledError`.