"""Asyncio bridge for channels, select and pools.

Channels and primitives block the calling thread. These helpers run the
blocking call in a worker thread so coroutines can use them without
stalling the event loop.

Cancelling the awaiting coroutine does not interrupt the thread: a blocked
areceive() keeps its thread until an item arrives or the channel closes.
Close channels on shutdown so no thread stays parked.

Example:
    >>> async def consume(pool: WorkerPool[int]) -> list[int]:
    ...     return [r.value async for r in aiter_channel(pool.result_channel)]
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING, ParamSpec, TypeVar

from .channel import CLOSED, Channel, ReceiveChannel, SendChannel
from .select import Selected, select

if TYPE_CHECKING:
    from .channel import Polled, Receivable, Received

T = TypeVar("T")
P = ParamSpec("P")

__all__ = [
    "to_thread",
    "asend",
    "areceive",
    "aselect",
    "aiter_channel",
]


async def to_thread(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a blocking call in the loop's default executor."""
    loop = asyncio.get_running_loop()
    if kwargs:
        func = functools.partial(func, **kwargs)  # type: ignore[assignment]
    return await loop.run_in_executor(None, func, *args)


async def asend(channel: Channel[T] | SendChannel[T], item: T) -> None:
    """Await Channel.send() without blocking the event loop."""
    await to_thread(channel.send, item)


async def areceive(channel: Channel[T] | ReceiveChannel[T]) -> Received[T]:
    """Await Channel.receive(): an item, or CLOSED once closed and drained."""
    return await to_thread(channel.receive)


async def aselect(
    *sources: Receivable[T],
    timeout: float | None = None,
    fair: bool | None = None,
) -> Selected[T]:
    """Await select(); raises SelectTimeoutError like the sync form."""
    return await to_thread(select, *sources, timeout=timeout, fair=fair)


async def aiter_channel(channel: Channel[T] | ReceiveChannel[T]) -> AsyncIterator[T]:
    """Async-iterate a channel until it is closed and drained."""
    while True:
        item: Polled[T] = await areceive(channel)
        if item is CLOSED:
            return
        yield item  # type: ignore[misc]
