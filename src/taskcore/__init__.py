"""taskcore - Concurrent task execution core.

A bounded worker pool fed through message-passing channels, a selective
multi-way wait, and ownership-checked synchronization primitives protecting
shared state. Single process, thread based.

Quick Start:
    >>> from taskcore import Job, WorkerPool
    >>>
    >>> def double(job: Job) -> int:
    ...     return job.payload * 2
    >>>
    >>> with WorkerPool(double, workers=3, queue_capacity=10) as pool:
    ...     for n in range(1, 11):
    ...         pool.submit(Job(id=n, payload=n))
    >>> sorted(r.value for r in pool.results())
    [2, 4, 6, 8, 10, 12, 14, 16, 18, 20]

Channels & Select:
    >>> from taskcore import Channel, select, after
    >>>
    >>> fast, slow = Channel(1), Channel(1)
    >>> fast.send("ready")
    >>> fired = select(fast, slow, timeout=1.0)
    >>> fired.index, fired.value
    (0, 'ready')

Shared State:
    >>> from taskcore import SharedCounter
    >>> hits = SharedCounter()
    >>> hits.increment()
    1

Configuration:
    Environment variables with TASKCORE_ prefix (see taskcore.foundation.config).
"""

from __future__ import annotations

from taskcore.foundation.config import TaskcoreSettings, clear_settings_cache, get_settings
from taskcore.foundation.errors import (
    ClosedChannelError,
    ContractViolationError,
    ErrorCode,
    LockMisuseError,
    OnceFailedError,
    PoolClosedError,
    SelectTimeoutError,
    TaskcoreError,
    WaitGroupMisuseError,
)
from taskcore.runtime.concurrency import (
    CLOSED,
    EMPTY,
    Channel,
    CondVar,
    Job,
    Lock,
    OnceLatch,
    PoolState,
    PoolStats,
    ReceiveChannel,
    Result,
    ResultStatus,
    RWLock,
    RWSharedCounter,
    Selected,
    SendChannel,
    SharedCounter,
    WaitGroup,
    WorkerPool,
    after,
    aiter_channel,
    areceive,
    aselect,
    asend,
    run_jobs,
    select,
    try_select,
)
from taskcore.runtime.observability import configure_from_settings, configure_logging, get_logger

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Channels
    "Channel", "SendChannel", "ReceiveChannel", "CLOSED", "EMPTY",
    # Select
    "select", "try_select", "after", "Selected",
    # Pool
    "Job", "Result", "ResultStatus", "PoolState", "PoolStats", "WorkerPool", "run_jobs",
    # Primitives
    "Lock", "RWLock", "CondVar", "OnceLatch", "WaitGroup",
    "SharedCounter", "RWSharedCounter",
    # Async bridge
    "asend", "areceive", "aselect", "aiter_channel",
    # Errors
    "ErrorCode", "TaskcoreError", "ClosedChannelError", "PoolClosedError", "SelectTimeoutError",
    "ContractViolationError", "LockMisuseError", "WaitGroupMisuseError", "OnceFailedError",
    # Config & logging
    "TaskcoreSettings", "get_settings", "clear_settings_cache",
    "configure_logging", "configure_from_settings", "get_logger",
]
