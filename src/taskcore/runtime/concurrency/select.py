"""Selective wait across several channels.

select() blocks until one of its sources has an item or has closed, or the
timeout elapses, and reports which source fired.

Tie-break:
    When several sources are ready, the winner is picked at random: the scan
    order is reshuffled on every attempt so no source can starve the others.
    Pass fair=False (or set TASKCORE_SELECT_FAIR=false) to scan in argument
    order instead, which gives earlier sources strict priority.

Example:
    >>> fired = select(results, errors, timeout=3.0)
    >>> if fired.closed:
    ...     print(f"source {fired.index} closed")
    ... else:
    ...     handle(fired.value)

    >>> # Go-style timer channel
    >>> fired = select(results, after(1.0))
"""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass
from typing import Generic, TypeVar

from taskcore.foundation.config import get_settings
from taskcore.foundation.errors import SelectTimeoutError

from .channel import CLOSED, EMPTY, Channel, Receivable, ReceiveChannel, Signal
from .sync import CondVar, Lock

T = TypeVar("T")

__all__ = [
    "select",
    "try_select",
    "after",
    "Selected",
]


@dataclass(slots=True, frozen=True)
class Selected(Generic[T]):
    """Outcome of a selective wait.

    Attributes:
        index: Position of the source that fired in the select() call
        source: The source itself
        value: The received item, or CLOSED if the source closed and drained
    """

    index: int
    source: Receivable[T]
    value: T | Signal

    @property
    def closed(self) -> bool:
        return self.value is CLOSED


class _Wakeup:
    """Flag a parked select() waits on. Sources set it when they become ready."""

    __slots__ = ("_lock", "_cond", "_fired")

    def __init__(self) -> None:
        self._lock = Lock()
        self._cond = CondVar(self._lock)
        self._fired = False

    def notify(self) -> None:
        with self._lock:
            self._fired = True
            self._cond.broadcast()

    def reset(self) -> None:
        with self._lock:
            self._fired = False

    def wait(self, timeout: float | None) -> bool:
        with self._lock:
            return self._cond.wait_for(lambda: self._fired, timeout)


def _poll(sources: tuple[Receivable[T], ...], order: list[int], fair: bool) -> Selected[T] | None:
    if fair:
        random.shuffle(order)
    for i in order:
        value = sources[i].try_receive()
        if value is not EMPTY:
            return Selected(i, sources[i], value)
    return None


def select(
    *sources: Receivable[T],
    timeout: float | None = None,
    fair: bool | None = None,
) -> Selected[T]:
    """Wait until any source has an item or a close signal.

    Args:
        *sources: Channels (or receive-only views) to watch
        timeout: Seconds to wait; None waits forever, 0 polls once
        fair: Randomize among ready sources. Defaults to TASKCORE_SELECT_FAIR.

    Returns:
        Selected describing the source that fired

    Raises:
        ValueError: If no sources are given
        SelectTimeoutError: If the timeout elapses first
    """
    if not sources:
        raise ValueError("select() requires at least one source")
    if fair is None:
        fair = get_settings().select.fair

    deadline = None if timeout is None else time.monotonic() + timeout
    order = list(range(len(sources)))
    wakeup = _Wakeup()
    for source in sources:
        source.watch(wakeup)
    try:
        while True:
            # Reset before polling: a source that turns ready after the poll
            # sets the flag and the wait below returns immediately
            wakeup.reset()
            if (fired := _poll(sources, order, fair)) is not None:
                return fired
            if deadline is None:
                wakeup.wait(None)
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise SelectTimeoutError(timeout)
            wakeup.wait(remaining)
    finally:
        for source in sources:
            source.unwatch(wakeup)


def try_select(*sources: Receivable[T], fair: bool | None = None) -> Selected[T] | None:
    """Non-blocking select: the fired source, or None if nothing is ready."""
    if not sources:
        raise ValueError("try_select() requires at least one source")
    if fair is None:
        fair = get_settings().select.fair
    return _poll(sources, list(range(len(sources))), fair)


def after(delay: float) -> ReceiveChannel[float]:
    """Channel that delivers the monotonic clock once after delay seconds, then closes."""
    channel: Channel[float] = Channel(1)

    def fire() -> None:
        channel.send(time.monotonic())
        channel.close()

    timer = threading.Timer(delay, fire)
    timer.daemon = True
    timer.start()
    return channel.receiver()
