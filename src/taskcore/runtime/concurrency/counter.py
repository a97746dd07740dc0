"""Shared counters: a value bundled with the lock that guards it.

Callers share one counter object by reference instead of a module-level
variable, so the value is never reachable outside its critical section.
"""

from __future__ import annotations

from .sync import Lock, RWLock

__all__ = ["SharedCounter", "RWSharedCounter"]


class SharedCounter:
    """Integer counter guarded by a Lock."""

    __slots__ = ("_lock", "_value")

    def __init__(self, initial: int = 0) -> None:
        self._lock = Lock()
        self._value = initial

    def increment(self, delta: int = 1) -> int:
        """Add delta and return the new value."""
        with self._lock:
            self._value += delta
            return self._value

    def decrement(self, delta: int = 1) -> int:
        return self.increment(-delta)

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def reset(self, value: int = 0) -> int:
        """Set a new value, returning the previous one."""
        with self._lock:
            previous, self._value = self._value, value
            return previous

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value})"


class RWSharedCounter:
    """Integer counter guarded by an RWLock: concurrent reads, exclusive writes."""

    __slots__ = ("_lock", "_value")

    def __init__(self, initial: int = 0, *, prefer_writers: bool | None = None) -> None:
        self._lock = RWLock(prefer_writers=prefer_writers)
        self._value = initial

    def increment(self, delta: int = 1) -> int:
        with self._lock.write_locked():
            self._value += delta
            return self._value

    @property
    def value(self) -> int:
        with self._lock.read_locked():
            return self._value

    @property
    def lock(self) -> RWLock:
        return self._lock

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value})"
