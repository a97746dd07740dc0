"""Thread-based concurrency primitives for task execution.

This module provides channels, a selective wait, a bounded worker pool and
the synchronization primitives that protect state shared between workers.

Key Components:
    - Channel: Buffered or rendezvous FIFO, closeable, with directional views
    - select: Wait on several channels plus an optional timeout
    - WorkerPool: Fixed workers between a job channel and a result channel
    - Synchronization primitives: Lock, RWLock, CondVar, OnceLatch, WaitGroup
    - SharedCounter: A value bundled with the lock that guards it
    - Async bridge: asend, areceive, aselect, aiter_channel

Data flow:
    producers -> job Channel -> WorkerPool workers -> result Channel -> consumers
    with a done channel, observed through select, carrying cancellation.

Example:
    >>> from taskcore.runtime.concurrency import Job, WorkerPool
    >>>
    >>> with WorkerPool(lambda job: job.payload * 2, workers=3, queue_capacity=10) as pool:
    ...     for n in range(1, 11):
    ...         pool.submit(Job(id=n, payload=n))
    >>> sorted(r.value for r in pool.results())
    [2, 4, 6, 8, 10, 12, 14, 16, 18, 20]
"""

from __future__ import annotations

# Synchronization primitives
from .sync import (
    CondVar,
    Lock,
    OnceLatch,
    RWLock,
    WaitGroup,
)

# Channels
from .channel import (
    CLOSED,
    EMPTY,
    Channel,
    Receivable,
    ReceiveChannel,
    SendChannel,
    Signal,
)

# Selective wait
from .select import (
    Selected,
    after,
    select,
    try_select,
)

# Shared state
from .counter import (
    RWSharedCounter,
    SharedCounter,
)

# Worker pool
from .pool import (
    Job,
    PoolState,
    PoolStats,
    Result,
    ResultStatus,
    WorkerPool,
    run_jobs,
)

# Sync/async interop
from .interop import (
    aiter_channel,
    areceive,
    aselect,
    asend,
    to_thread,
)

__all__ = [
    # Sync primitives
    "Lock",
    "CondVar",
    "RWLock",
    "OnceLatch",
    "WaitGroup",
    # Channels
    "Channel",
    "SendChannel",
    "ReceiveChannel",
    "Receivable",
    "Signal",
    "CLOSED",
    "EMPTY",
    # Selective wait
    "select",
    "try_select",
    "after",
    "Selected",
    # Shared state
    "SharedCounter",
    "RWSharedCounter",
    # Pool
    "Job",
    "Result",
    "ResultStatus",
    "PoolState",
    "PoolStats",
    "WorkerPool",
    "run_jobs",
    # Interop
    "to_thread",
    "asend",
    "areceive",
    "aselect",
    "aiter_channel",
]
