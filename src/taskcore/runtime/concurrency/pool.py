"""Bounded worker pool fed through channels.

Producers submit Jobs into a job channel; a fixed set of worker threads
receive them, run the handler, and send exactly one Result per job into a
result channel that consumers iterate.

Key Features:
    - Backpressure: submit() blocks while the job channel is full
    - Completion barrier: shutdown() joins every worker, then closes results
    - Cooperative cancellation: workers watch a done channel via select()
    - Failure capture: a raising handler yields a failed Result, the worker
      keeps running

Lifecycle:
    CREATED --start()--> RUNNING --shutdown()/close()--> SHUTTING_DOWN --> STOPPED

Jobs submitted before start() wait in the job channel. Shutting down a pool
that was never started still spawns the workers once so those jobs get
their results.

The result channel has finite capacity (queue_capacity unless set). Either
consume results() while jobs run, or size result_capacity for every job
before calling the blocking shutdown(). Otherwise workers block on a full
result channel and shutdown() never returns. Leaving a ``with`` block uses
the non-blocking close(), so results() drains safely after it.

Example:
    >>> with WorkerPool(lambda job: job.payload * 2, workers=3, queue_capacity=10) as pool:
    ...     for n in range(1, 11):
    ...         pool.submit(Job(id=n, payload=n))
    >>> sorted(r.value for r in pool.results())
    [2, 4, 6, 8, 10, 12, 14, 16, 18, 20]

    >>> # Producer and consumer running together
    >>> pool = WorkerPool(handler, workers=4, queue_capacity=16).start()
    >>> threading.Thread(target=feed, args=(pool,)).start()  # submits, then pool.close()
    >>> for result in pool.results():
    ...     print(result.job_id, result.value)
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field

from taskcore.foundation.config import PoolSettings, get_settings
from taskcore.foundation.errors import ClosedChannelError, PoolClosedError
from taskcore.runtime.observability import StructuredLogger, get_logger

from .channel import CLOSED, EMPTY, Channel, Receivable, ReceiveChannel
from .counter import SharedCounter
from .select import select
from .sync import Lock, WaitGroup

if TYPE_CHECKING:
    from types import TracebackType

R = TypeVar("R")

__all__ = [
    "Job",
    "Result",
    "ResultStatus",
    "PoolState",
    "PoolStats",
    "WorkerPool",
    "run_jobs",
]

JobId = int | str


# ─────────────────────────────────────────────────────────────────────────────
# Jobs & Results
# ─────────────────────────────────────────────────────────────────────────────


class Job(BaseModel):
    """Unit of work: identifier plus opaque payload. Immutable once built."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: JobId
    payload: Any = None


class ResultStatus(StrEnum):
    """Outcome of processing a job."""
    OK = "ok"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class Result(Generic[R]):
    """Result of one job, produced exactly once per accepted job.

    Attributes:
        job_id: Identifier of the job this result belongs to
        value: Handler return value when status is OK
        error: Exception raised by the handler when status is FAILED
        status: 'ok' or 'failed'
    """

    job_id: JobId
    value: R | None = None
    error: BaseException | None = None
    status: ResultStatus = ResultStatus.OK

    @classmethod
    def success(cls, job_id: JobId, value: R) -> Result[R]:
        return cls(job_id, value=value)

    @classmethod
    def failure(cls, job_id: JobId, error: BaseException) -> Result[R]:
        return cls(job_id, error=error, status=ResultStatus.FAILED)

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.OK

    def unwrap(self) -> R:
        """Get value or raise stored error."""
        if not self.ok:
            raise self.error or RuntimeError(f"job {self.job_id!r} failed with no error")
        return self.value  # type: ignore[return-value]

    def unwrap_or(self, default: R) -> R:
        return self.value if self.ok else default  # type: ignore[return-value]


# ─────────────────────────────────────────────────────────────────────────────
# Pool State
# ─────────────────────────────────────────────────────────────────────────────


class PoolState(StrEnum):
    """Pool lifecycle states."""
    CREATED = "created"              # Constructed, workers not started
    RUNNING = "running"              # Workers consuming jobs
    SHUTTING_DOWN = "shutting_down"  # Job channel closed, workers draining
    STOPPED = "stopped"              # Workers joined, result channel closed


class PoolStats(BaseModel):
    """Snapshot of pool counters."""

    model_config = ConfigDict(frozen=True)

    submitted: int = Field(ge=0)
    completed: int = Field(ge=0, description="Results produced, successful or failed")
    failed: int = Field(ge=0)

    @computed_field
    @property
    def in_flight(self) -> int:
        """Accepted jobs without a result yet."""
        return self.submitted - self.completed


# ─────────────────────────────────────────────────────────────────────────────
# Worker Pool
# ─────────────────────────────────────────────────────────────────────────────


class WorkerPool(Generic[R]):
    """Fixed set of worker threads between a job channel and a result channel.

    Args:
        handler: Called once per job in a worker thread; its return value
            becomes Result.value, an exception becomes a failed Result
        workers: Number of worker threads (> 0). Defaults to TASKCORE_POOL_WORKERS.
        queue_capacity: Job channel capacity (>= 0, 0 = rendezvous).
            Defaults to TASKCORE_POOL_QUEUE_CAPACITY.
        result_capacity: Result channel capacity. Defaults to
            TASKCORE_POOL_RESULT_CAPACITY, falling back to queue_capacity.
        done: Extra cancellation source. Closing it stops every worker from
            pulling new jobs; a value sent on it stops only the one worker
            whose select receives it
        name: Pool name used in thread names and log context

    Raises:
        ValueError: If workers < 1 or a capacity is negative
    """

    def __init__(
        self,
        handler: Callable[[Job], R],
        workers: int | None = None,
        queue_capacity: int | None = None,
        *,
        result_capacity: int | None = None,
        done: Receivable[object] | None = None,
        name: str = "pool",
        settings: PoolSettings | None = None,
    ) -> None:
        settings = settings or get_settings().pool
        if queue_capacity is not None:
            settings = settings.model_copy(update={"queue_capacity": queue_capacity})
        workers = settings.workers if workers is None else workers
        queue_capacity = settings.queue_capacity
        if result_capacity is None:
            result_capacity = settings.effective_result_capacity
        if workers < 1:
            raise ValueError("workers must be >= 1")
        if queue_capacity < 0 or result_capacity < 0:
            raise ValueError("capacities must be >= 0")

        self.name = name
        self._handler = handler
        self._workers = workers
        self._thread_name_prefix = settings.thread_name_prefix
        self._jobs: Channel[Job] = Channel(queue_capacity)
        self._results: Channel[Result[R]] = Channel(result_capacity)
        self._cancel: Channel[None] = Channel()
        self._done = done
        self._barrier = WaitGroup()
        self._threads: list[threading.Thread] = []
        self._state = PoolState.CREATED
        self._state_lock = Lock()
        self._submitted = SharedCounter()
        self._completed = SharedCounter()
        self._failed = SharedCounter()
        self._next_id = SharedCounter()
        self._log = get_logger("taskcore.pool", pool=name)

    # ─────────────────────────────────────────────────────────────────────
    # Introspection
    # ─────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> PoolState:
        return self._state

    @property
    def workers(self) -> int:
        return self._workers

    @property
    def queue_capacity(self) -> int:
        return self._jobs.capacity

    @property
    def result_channel(self) -> ReceiveChannel[Result[R]]:
        """Receive-only view of results, usable as a select() source."""
        return self._results.receiver()

    @property
    def stats(self) -> PoolStats:
        return PoolStats(
            submitted=self._submitted.value,
            completed=self._completed.value,
            failed=self._failed.value,
        )

    @property
    def cancelled(self) -> bool:
        return self._cancel.closed

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} workers={self._workers} {self._state}>"

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def start(self) -> WorkerPool[R]:
        """Spawn the worker threads.

        Raises:
            RuntimeError: If the pool is already running
            PoolClosedError: If the pool has been shut down
        """
        with self._state_lock:
            if self._state is PoolState.RUNNING:
                raise RuntimeError("pool already started")
            if self._state is not PoolState.CREATED:
                raise PoolClosedError("cannot start a pool after shutdown")
            self._state = PoolState.RUNNING
            self._spawn_workers()
        self._log.info("pool started", workers=self._workers, queue_capacity=self._jobs.capacity)
        return self

    def _spawn_workers(self) -> None:
        """Start every worker thread. Caller holds the state lock."""
        self._barrier.add(self._workers)
        for worker_id in range(1, self._workers + 1):
            thread = threading.Thread(
                target=self._run_worker,
                args=(worker_id,),
                name=f"{self._thread_name_prefix}{self.name}-{worker_id}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

    def _begin_shutdown(self) -> bool:
        """Move to SHUTTING_DOWN and close the job channel. False if already stopped.

        A pool that was never started but holds accepted jobs spawns its
        workers after the close, so every accepted job still yields a Result.
        """
        with self._state_lock:
            if self._state is PoolState.STOPPED:
                return False
            never_started = self._state is PoolState.CREATED
            if self._state is not PoolState.SHUTTING_DOWN:
                self._state = PoolState.SHUTTING_DOWN
                self._log.info("pool shutting down", submitted=self._submitted.value)
            self._jobs.close()
            if never_started and len(self._jobs):
                self._log.info("draining unstarted pool", pending=len(self._jobs))
                self._spawn_workers()
        return True

    def _finish(self) -> None:
        """Join barrier: wait for every worker, then close the result channel."""
        self._barrier.wait()
        self._results.close()
        with self._state_lock:
            if self._state is PoolState.STOPPED:
                return
            self._state = PoolState.STOPPED
        stats = self.stats
        self._log.info("pool stopped", submitted=stats.submitted, completed=stats.completed, failed=stats.failed)

    def shutdown(self) -> None:
        """Stop accepting jobs, wait for workers to drain and exit, close results.

        Idempotent. Blocks until every worker has exited.
        """
        if self._begin_shutdown():
            self._finish()

    def close(self) -> None:
        """Non-blocking shutdown: the join and result close happen in a closer thread."""
        if not self._begin_shutdown():
            return
        threading.Thread(
            target=self._finish,
            name=f"{self._thread_name_prefix}{self.name}-closer",
            daemon=True,
        ).start()

    def cancel(self) -> None:
        """Tell workers to stop pulling new jobs.

        Jobs already buffered stay in the job channel; collect them with
        drain_pending() after shutdown(). A job a worker is processing runs
        to completion.
        """
        if not self._cancel.closed:
            self._log.warning("pool cancelled", pending=len(self._jobs))
        self._cancel.close()

    def drain_pending(self) -> list[Job]:
        """Remove and return jobs still buffered in the job channel."""
        pending: list[Job] = []
        while (job := self._jobs.try_receive()) is not EMPTY and job is not CLOSED:
            pending.append(job)
        return pending

    def __enter__(self) -> WorkerPool[R]:
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Non-blocking: leaves through close(), so results() drains the rest
        even when the result channel is a rendezvous."""
        if exc_val is not None:
            self.cancel()
        self.close()

    # ─────────────────────────────────────────────────────────────────────
    # Producing & Consuming
    # ─────────────────────────────────────────────────────────────────────

    def submit(self, job: Job) -> Job:
        """Enqueue a job, blocking while the job channel is full.

        Raises:
            PoolClosedError: If shutdown has begun
        """
        if self._state in (PoolState.SHUTTING_DOWN, PoolState.STOPPED):
            raise PoolClosedError()
        self._submitted.increment()
        try:
            self._jobs.send(job)
        except ClosedChannelError as exc:
            self._submitted.decrement()
            raise PoolClosedError() from exc
        return job

    def submit_payload(self, payload: object) -> Job:
        """Wrap payload in a Job with the next sequential id and submit it."""
        return self.submit(Job(id=self._next_id.increment(), payload=payload))

    def results(self) -> Iterator[Result[R]]:
        """Iterate results until the pool is shut down and drained.

        Not restartable: once exhausted, a new call yields nothing.
        """
        return iter(self._results)

    # ─────────────────────────────────────────────────────────────────────
    # Workers
    # ─────────────────────────────────────────────────────────────────────

    def _next_job(self) -> Job | None:
        """Next job, or None when the worker should exit."""
        # Cancellation sources first, in order, so a fired done always wins over a ready job
        sources: tuple[Receivable[Any], ...] = (
            (self._cancel, self._done, self._jobs) if self._done is not None else (self._cancel, self._jobs)
        )
        fired = select(*sources, fair=False)
        if fired.source is not self._jobs or fired.closed:
            return None
        return fired.value  # type: ignore[return-value]

    def _process(self, job: Job, log: StructuredLogger) -> Result[R]:
        try:
            value = self._handler(job)
        except Exception as exc:
            self._failed.increment()
            log.exception("job failed", job_id=job.id, error=repr(exc))
            result: Result[R] = Result.failure(job.id, exc)
        else:
            result = Result.success(job.id, value)
        self._completed.increment()
        return result

    def _run_worker(self, worker_id: int) -> None:
        log = self._log.bind(worker=worker_id)
        log.debug("worker started")
        try:
            while (job := self._next_job()) is not None:
                self._results.send(self._process(job, log))
        finally:
            self._barrier.done()
            log.debug("worker exited")


# ─────────────────────────────────────────────────────────────────────────────
# Convenience Functions
# ─────────────────────────────────────────────────────────────────────────────


def run_jobs(
    handler: Callable[[Job], R],
    jobs: Iterable[Job],
    *,
    workers: int | None = None,
    queue_capacity: int | None = None,
    name: str = "run_jobs",
) -> list[Result[R]]:
    """Run jobs through a temporary pool and collect every result.

    A feeder thread submits the jobs and closes the pool while the calling
    thread consumes results, so bounded channels never deadlock.

    Example:
        >>> results = run_jobs(lambda j: j.payload ** 2, [Job(id=i, payload=i) for i in range(5)], workers=2)
        >>> sorted(r.value for r in results)
        [0, 1, 4, 9, 16]
    """
    pool: WorkerPool[R] = WorkerPool(handler, workers, queue_capacity, name=name).start()
    feed_errors: list[BaseException] = []

    def feed() -> None:
        try:
            for job in jobs:
                pool.submit(job)
        except BaseException as exc:  # re-raised in the calling thread
            feed_errors.append(exc)
        finally:
            pool.close()

    feeder = threading.Thread(target=feed, name=f"{name}-feeder", daemon=True)
    feeder.start()
    results = list(pool.results())
    feeder.join()
    if feed_errors:
        raise feed_errors[0]
    return results
