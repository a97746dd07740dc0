"""Synchronization primitives for thread-based workers.

Thin, ownership-checked primitives protecting state shared between worker
threads. Built on the interpreter's raw lock so the invariants (single
holder, reader/writer exclusion, run-once) are explicit and checked rather
than assumed.

Key Components:
    - Lock: Mutual exclusion with owner tracking; misuse raises LockMisuseError
    - CondVar: Condition variable bound to one Lock (wait/signal/broadcast)
    - RWLock: Shared/exclusive lock, writer-preferring by default
    - OnceLatch: Run an action at most once across concurrent callers
    - WaitGroup: Counter-based completion barrier

Policies:
    - Ownership is per thread. A Lock released from a thread that does not
      hold it raises LockMisuseError. Re-acquiring a held Lock from the same
      thread deadlocks: Lock is not reentrant.
    - RWLock with prefer_writers=True blocks new readers while a writer is
      waiting, so a steady stream of readers cannot starve writers. A thread
      that already holds a read lock and acquires it again while a writer is
      waiting will deadlock.
    - OnceLatch with retry_on_error=False treats a failed action as final:
      the caller that ran it gets the original exception, every other caller
      gets OnceFailedError chained to it. With retry_on_error=True the next
      caller runs the action again.
    - Primitives are never copied. copy.copy()/deepcopy() raise TypeError.

Example:
    >>> lock = Lock()
    >>> ready = CondVar(lock)
    >>> with lock:
    ...     ready.wait_for(lambda: state.ready)
"""

from __future__ import annotations

import threading
import time
from collections import Counter, deque
from contextlib import contextmanager
from enum import StrEnum
from typing import TYPE_CHECKING, Callable, Generic, TypeVar

from taskcore.foundation.config import get_settings
from taskcore.foundation.errors import LockMisuseError, OnceFailedError, WaitGroupMisuseError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from types import TracebackType

T = TypeVar("T")

__all__ = [
    "Lock",
    "CondVar",
    "RWLock",
    "OnceLatch",
    "WaitGroup",
]


class _Uncopyable:
    """Copying a primitive would duplicate (and corrupt) its ownership state."""

    __slots__ = ()

    def __copy__(self) -> None:
        raise TypeError(f"{type(self).__name__} cannot be copied")

    def __deepcopy__(self, memo: dict[int, object]) -> None:
        raise TypeError(f"{type(self).__name__} cannot be copied")


# ─────────────────────────────────────────────────────────────────────────────
# Lock
# ─────────────────────────────────────────────────────────────────────────────


class Lock(_Uncopyable):
    """Mutual-exclusion lock with owner tracking.

    At most one thread holds the lock at any instant. Only the holder may
    release it.

    Example:
        >>> lock = Lock()
        >>> with lock:
        ...     balance += amount
    """

    __slots__ = ("_lock", "_owner")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._owner: int | None = None

    def acquire(self, timeout: float | None = None) -> bool:
        """Block until exclusive ownership is obtained.

        Args:
            timeout: Seconds to wait; None waits forever, 0 tries once

        Returns:
            True if acquired, False if the timeout elapsed
        """
        if timeout is None:
            acquired = self._lock.acquire()
        elif timeout <= 0:
            acquired = self._lock.acquire(False)
        else:
            acquired = self._lock.acquire(True, timeout)
        if acquired:
            self._owner = threading.get_ident()
        return acquired

    def release(self) -> None:
        """Release ownership.

        Raises:
            LockMisuseError: If the calling thread is not the holder
        """
        if self._owner != threading.get_ident():
            state = "unlocked" if self._owner is None else "held by another thread"
            raise LockMisuseError(f"release() of a lock that is {state}")
        self._owner = None
        self._lock.release()

    @property
    def locked(self) -> bool:
        """Whether any thread currently holds the lock."""
        return self._lock.locked()

    @property
    def owned(self) -> bool:
        """Whether the calling thread holds the lock."""
        return self._owner == threading.get_ident()

    def __enter__(self) -> Lock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {'locked' if self.locked else 'unlocked'}>"


# ─────────────────────────────────────────────────────────────────────────────
# Condition Variable
# ─────────────────────────────────────────────────────────────────────────────


class CondVar(_Uncopyable):
    """Condition variable bound to exactly one Lock.

    wait() atomically releases the bound lock and parks the caller; the lock
    is re-acquired before wait() returns. Wake-ups can be spurious or late,
    so callers must re-check their predicate in a loop, or use wait_for(),
    which does it for them.

    Example:
        >>> with lock:
        ...     while not queue:
        ...         not_empty.wait()
        ...     item = queue.popleft()
    """

    __slots__ = ("_lock", "_waiters", "_guard")

    def __init__(self, lock: Lock | None = None) -> None:
        self._lock = lock if lock is not None else Lock()
        self._waiters: deque[threading.Lock] = deque()
        # Guards the waiter queue; signal() may be called without the bound lock
        self._guard = threading.Lock()

    @property
    def lock(self) -> Lock:
        return self._lock

    def wait(self, timeout: float | None = None) -> bool:
        """Release the bound lock and suspend until signalled.

        Args:
            timeout: Seconds to wait; None waits until signalled

        Returns:
            False if the timeout elapsed, True otherwise

        Raises:
            LockMisuseError: If the caller does not hold the bound lock
        """
        if not self._lock.owned:
            raise LockMisuseError("wait() requires holding the bound lock")
        waiter = threading.Lock()
        waiter.acquire()
        with self._guard:
            self._waiters.append(waiter)
        self._lock.release()
        woken = False
        try:
            if timeout is None:
                woken = waiter.acquire()
            elif timeout > 0:
                woken = waiter.acquire(True, timeout)
            else:
                woken = waiter.acquire(False)
            return woken
        finally:
            self._lock.acquire()
            if not woken:
                with self._guard:
                    try:
                        self._waiters.remove(waiter)
                    except ValueError:
                        pass  # signalled after timing out

    def wait_for(self, predicate: Callable[[], T], timeout: float | None = None) -> T:
        """Wait until predicate() is truthy, re-checking after every wake-up.

        Returns:
            The last value of predicate(); falsy only if the timeout elapsed
        """
        deadline: float | None = None
        remaining = timeout
        result = predicate()
        while not result:
            if remaining is not None:
                if deadline is None:
                    deadline = time.monotonic() + remaining
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
            self.wait(remaining)
            result = predicate()
        return result

    def signal(self, n: int = 1) -> None:
        """Wake up to n waiters (at least one if any are parked)."""
        with self._guard:
            for _ in range(min(n, len(self._waiters))):
                self._waiters.popleft().release()

    def broadcast(self) -> None:
        """Wake all parked waiters."""
        with self._guard:
            while self._waiters:
                self._waiters.popleft().release()

    @property
    def waiting(self) -> int:
        """Number of parked waiters."""
        return len(self._waiters)

    def __enter__(self) -> CondVar:
        self._lock.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._lock.release()


# ─────────────────────────────────────────────────────────────────────────────
# Reader-Writer Lock
# ─────────────────────────────────────────────────────────────────────────────


class RWLock(_Uncopyable):
    """Shared/exclusive lock.

    Any number of readers may hold the lock together; a writer holds it
    alone. Invariant: readers > 0 implies no writer, and a writer implies
    zero readers.

    Args:
        prefer_writers: Block new readers while a writer waits. Defaults to
            TASKCORE_SYNC_RWLOCK_PREFER_WRITERS (True).

    Example:
        >>> rw = RWLock()
        >>> with rw.read_locked():
        ...     snapshot = dict(table)
        >>> with rw.write_locked():
        ...     table[key] = value
    """

    __slots__ = ("_lock", "_can_read", "_can_write", "_readers", "_writer", "_waiting_writers", "prefer_writers")

    def __init__(self, *, prefer_writers: bool | None = None) -> None:
        if prefer_writers is None:
            prefer_writers = get_settings().sync.rwlock_prefer_writers
        self.prefer_writers = prefer_writers
        self._lock = Lock()
        self._can_read = CondVar(self._lock)
        self._can_write = CondVar(self._lock)
        self._readers: Counter[int] = Counter()  # thread ident -> read holds
        self._writer: int | None = None
        self._waiting_writers = 0

    def _read_ready(self) -> bool:
        if self._writer is not None:
            return False
        return not (self.prefer_writers and self._waiting_writers)

    def _write_ready(self) -> bool:
        return self._writer is None and not self._readers

    def acquire_read(self) -> None:
        """Block until shared access is granted."""
        with self._lock:
            self._can_read.wait_for(self._read_ready)
            self._readers[threading.get_ident()] += 1

    def release_read(self) -> None:
        """Release one shared hold taken by this thread.

        Raises:
            LockMisuseError: If this thread holds no read lock
        """
        me = threading.get_ident()
        with self._lock:
            if not self._readers[me]:
                raise LockMisuseError("release_read() without a matching acquire_read()")
            self._readers[me] -= 1
            if not self._readers[me]:
                del self._readers[me]
            if not self._readers:
                self._can_write.signal()

    def acquire_write(self) -> None:
        """Block until no readers and no other writer hold the lock."""
        with self._lock:
            self._waiting_writers += 1
            try:
                self._can_write.wait_for(self._write_ready)
            except BaseException:
                self._waiting_writers -= 1
                self._can_read.broadcast()
                raise
            self._waiting_writers -= 1
            self._writer = threading.get_ident()

    def release_write(self) -> None:
        """Release exclusive access.

        Raises:
            LockMisuseError: If this thread is not the writer
        """
        with self._lock:
            if self._writer != threading.get_ident():
                raise LockMisuseError("release_write() by a thread that does not hold the write lock")
            self._writer = None
            self._can_write.signal()
            self._can_read.broadcast()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    @property
    def readers(self) -> int:
        """Current number of read holds."""
        with self._lock:
            return sum(self._readers.values())

    @property
    def writer_active(self) -> bool:
        with self._lock:
            return self._writer is not None


# ─────────────────────────────────────────────────────────────────────────────
# Run-once Latch
# ─────────────────────────────────────────────────────────────────────────────


class _OnceState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class OnceLatch(_Uncopyable, Generic[T]):
    """Execute an action at most once across any number of callers.

    All callers block until the single execution finishes, then all return
    its value. Failure handling follows retry_on_error (see module docs).

    Args:
        retry_on_error: Reset the latch when the action raises. Defaults to
            TASKCORE_SYNC_ONCE_RETRY_ON_ERROR (False).

    Example:
        >>> config_once: OnceLatch[Config] = OnceLatch()
        >>> cfg = config_once.do(load_config)  # load_config runs once
    """

    __slots__ = ("_lock", "_finished", "_state", "_value", "_error", "retry_on_error")

    def __init__(self, *, retry_on_error: bool | None = None) -> None:
        if retry_on_error is None:
            retry_on_error = get_settings().sync.once_retry_on_error
        self.retry_on_error = retry_on_error
        self._lock = Lock()
        self._finished = CondVar(self._lock)
        self._state = _OnceState.PENDING
        self._value: T | None = None
        self._error: BaseException | None = None

    @property
    def done(self) -> bool:
        """Whether the action has run to completion (successfully or, without retry, not)."""
        return self._state in (_OnceState.DONE, _OnceState.FAILED)

    @property
    def error(self) -> BaseException | None:
        return self._error

    def do(self, action: Callable[[], T]) -> T:
        """Run action unless it already ran; return its value.

        Raises:
            OnceFailedError: The action failed in another caller and the
                latch does not retry
            Exception: Whatever action raised, in the caller that ran it
        """
        if self._state is _OnceState.DONE:
            return self._value  # type: ignore[return-value]

        with self._lock:
            self._finished.wait_for(lambda: self._state is not _OnceState.RUNNING)
            if self._state is _OnceState.DONE:
                return self._value  # type: ignore[return-value]
            if self._state is _OnceState.FAILED:
                raise OnceFailedError() from self._error
            self._state = _OnceState.RUNNING

        try:
            value = action()
        except BaseException as exc:
            with self._lock:
                if self.retry_on_error:
                    self._state = _OnceState.PENDING
                else:
                    self._error = exc
                    self._state = _OnceState.FAILED
                self._finished.broadcast()
            raise

        with self._lock:
            self._value = value
            self._state = _OnceState.DONE
            self._finished.broadcast()
        return value


# ─────────────────────────────────────────────────────────────────────────────
# Wait Group
# ─────────────────────────────────────────────────────────────────────────────


class WaitGroup(_Uncopyable):
    """Completion barrier: wait() blocks until the counter drops to zero.

    Example:
        >>> wg = WaitGroup()
        >>> for item in items:
        ...     wg.add()
        ...     threading.Thread(target=work, args=(item, wg)).start()
        >>> wg.wait()
    """

    __slots__ = ("_lock", "_zero", "_count")

    def __init__(self) -> None:
        self._lock = Lock()
        self._zero = CondVar(self._lock)
        self._count = 0

    def add(self, delta: int = 1) -> None:
        """Adjust the counter.

        Raises:
            WaitGroupMisuseError: If the counter would go negative
        """
        with self._lock:
            count = self._count + delta
            if count < 0:
                raise WaitGroupMisuseError()
            self._count = count
            if count == 0:
                self._zero.broadcast()

    def done(self) -> None:
        self.add(-1)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the counter is zero. Returns False on timeout."""
        with self._lock:
            return self._zero.wait_for(lambda: self._count == 0, timeout)

    @property
    def count(self) -> int:
        return self._count
