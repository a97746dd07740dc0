"""Message-passing channels between worker threads.

A Channel is a FIFO queue with a fixed capacity:
    - capacity > 0: buffered. send() blocks while the buffer is full
      (backpressure).
    - capacity == 0: rendezvous. send() blocks until a receiver has taken
      the item.

Closing is one-way and idempotent. After close(), send() raises
ClosedChannelError, while receive() keeps draining buffered items and then
returns the CLOSED sentinel. CLOSED marks normal termination, it is not an
error.

Example:
    >>> jobs: Channel[int] = Channel(3)
    >>> jobs.send(1); jobs.send(2)
    >>> jobs.close()
    >>> list(jobs)
    [1, 2]
    >>> jobs.receive() is CLOSED
    True
"""

from __future__ import annotations

from collections import deque
from enum import Enum
from typing import TYPE_CHECKING, Final, Generic, Literal, Protocol, TypeVar, Union

from taskcore.foundation.errors import ClosedChannelError

from .sync import CondVar, Lock

if TYPE_CHECKING:
    from collections.abc import Iterator

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

__all__ = [
    "Channel",
    "SendChannel",
    "ReceiveChannel",
    "Signal",
    "CLOSED",
    "EMPTY",
    "Receivable",
]


class Signal(Enum):
    """Non-item outcomes of a receive."""
    CLOSED = "closed"  # closed and drained: normal termination
    EMPTY = "empty"    # nothing available right now (try_receive only)

    def __repr__(self) -> str:
        return f"<{self.name}>"


CLOSED: Final = Signal.CLOSED
EMPTY: Final = Signal.EMPTY

Received = Union[T, Literal[Signal.CLOSED]]
Polled = Union[T, Literal[Signal.CLOSED, Signal.EMPTY]]


class Watcher(Protocol):
    """Anything woken when a channel gains an item or closes (see select)."""

    def notify(self) -> None: ...


class Receivable(Protocol[T_co]):
    """What select() needs from a source."""

    def try_receive(self) -> T_co | Signal: ...
    def watch(self, watcher: Watcher) -> None: ...
    def unwatch(self, watcher: Watcher) -> None: ...


class _Offer(Generic[T]):
    """A rendezvous sender parked with its item until a receiver takes it."""

    __slots__ = ("item", "taken")

    def __init__(self, item: T) -> None:
        self.item = item
        self.taken = False


class Channel(Generic[T]):
    """Typed FIFO channel, buffered or rendezvous, closeable.

    Args:
        capacity: Buffer size; 0 makes every send a synchronous hand-off

    Raises:
        ValueError: If capacity is negative
    """

    __slots__ = ("_capacity", "_buffer", "_offers", "_closed", "_lock", "_readable", "_writable", "_watchers")

    def __init__(self, capacity: int = 0) -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        self._capacity = capacity
        self._buffer: deque[T] = deque()
        self._offers: deque[_Offer[T]] = deque()
        self._closed = False
        self._lock = Lock()
        self._readable = CondVar(self._lock)
        self._writable = CondVar(self._lock)
        self._watchers: list[Watcher] = []

    # ─────────────────────────────────────────────────────────────────────
    # Introspection
    # ─────────────────────────────────────────────────────────────────────

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        """Buffered item count, always within [0, capacity]."""
        return len(self._buffer)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<{type(self).__name__} {len(self._buffer)}/{self._capacity} {state}>"

    # ─────────────────────────────────────────────────────────────────────
    # Sending
    # ─────────────────────────────────────────────────────────────────────

    def send(self, item: T) -> None:
        """Enqueue item, blocking for buffer space or a receiver.

        Raises:
            ClosedChannelError: If the channel is closed before the item is
                accepted (a pending rendezvous offer is withdrawn)
        """
        with self._lock:
            if self._closed:
                raise ClosedChannelError()
            if self._capacity:
                self._writable.wait_for(lambda: self._closed or len(self._buffer) < self._capacity)
                if self._closed:
                    raise ClosedChannelError()
                self._buffer.append(item)
                self._readable.signal()
                self._notify_watchers()
                return

            offer = _Offer(item)
            self._offers.append(offer)
            self._readable.signal()
            self._notify_watchers()
            self._writable.wait_for(lambda: offer.taken or self._closed)
            if not offer.taken:
                raise ClosedChannelError()

    # ─────────────────────────────────────────────────────────────────────
    # Receiving
    # ─────────────────────────────────────────────────────────────────────

    def _take(self) -> Polled[T]:
        """Pop the next item. Caller holds the lock."""
        if self._buffer:
            item = self._buffer.popleft()
            self._writable.signal()
            return item
        if self._offers:
            offer = self._offers.popleft()
            offer.taken = True
            # Each parked sender waits on its own offer
            self._writable.broadcast()
            return offer.item
        return CLOSED if self._closed else EMPTY

    def receive(self) -> Received[T]:
        """Block until an item is available; CLOSED once closed and drained."""
        with self._lock:
            while True:
                item = self._take()
                if item is not EMPTY:
                    return item
                self._readable.wait()

    def try_receive(self) -> Polled[T]:
        """Non-blocking receive: an item, EMPTY, or CLOSED."""
        with self._lock:
            return self._take()

    def __iter__(self) -> Iterator[T]:
        """Yield items until the channel is closed and drained."""
        while (item := self.receive()) is not CLOSED:
            yield item

    # ─────────────────────────────────────────────────────────────────────
    # Closing
    # ─────────────────────────────────────────────────────────────────────

    def close(self) -> None:
        """Close the channel. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            # Parked rendezvous senders fail; their items are never delivered
            self._offers.clear()
            self._readable.broadcast()
            self._writable.broadcast()
            self._notify_watchers()

    # ─────────────────────────────────────────────────────────────────────
    # Readiness notification (used by select)
    # ─────────────────────────────────────────────────────────────────────

    def watch(self, watcher: Watcher) -> None:
        with self._lock:
            self._watchers.append(watcher)

    def unwatch(self, watcher: Watcher) -> None:
        with self._lock:
            try:
                self._watchers.remove(watcher)
            except ValueError:
                pass

    def _notify_watchers(self) -> None:
        for watcher in self._watchers:
            watcher.notify()

    # ─────────────────────────────────────────────────────────────────────
    # Directional views
    # ─────────────────────────────────────────────────────────────────────

    def sender(self) -> SendChannel[T]:
        """Send-only view for producers."""
        return SendChannel(self)

    def receiver(self) -> ReceiveChannel[T]:
        """Receive-only view for consumers."""
        return ReceiveChannel(self)


class SendChannel(Generic[T]):
    """Send-only view of a Channel."""

    __slots__ = ("_channel",)

    def __init__(self, channel: Channel[T]) -> None:
        self._channel = channel

    def send(self, item: T) -> None:
        self._channel.send(item)

    def close(self) -> None:
        self._channel.close()

    @property
    def closed(self) -> bool:
        return self._channel.closed

    def __repr__(self) -> str:
        return f"<{type(self).__name__} of {self._channel!r}>"


class ReceiveChannel(Generic[T]):
    """Receive-only view of a Channel. Usable as a select() source."""

    __slots__ = ("_channel",)

    def __init__(self, channel: Channel[T]) -> None:
        self._channel = channel

    def receive(self) -> Received[T]:
        return self._channel.receive()

    def try_receive(self) -> Polled[T]:
        return self._channel.try_receive()

    def watch(self, watcher: Watcher) -> None:
        self._channel.watch(watcher)

    def unwatch(self, watcher: Watcher) -> None:
        self._channel.unwatch(watcher)

    @property
    def closed(self) -> bool:
        return self._channel.closed

    def __iter__(self) -> Iterator[T]:
        return iter(self._channel)

    def __len__(self) -> int:
        return len(self._channel)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} of {self._channel!r}>"
