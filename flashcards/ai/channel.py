"""
Bounded single-producer/single-consumer channel on top of asyncio.Queue.

asyncio.Queue has no notion of a closed end, which the evaluation worker needs:
it must stop once the quiz loop stops sending, and it must be able to drop an
outcome once nobody is left to read it. ``Channel`` adds both ends' close
state to a bounded queue.
"""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class ChannelClosed(Exception):
    """Raised when sending to or receiving from a closed channel."""


class ChannelFull(Exception):
    """Raised by ``try_send`` when the channel is at capacity."""


class Channel(Generic[T]):
    """Bounded FIFO with close semantics for each end."""

    def __init__(self, capacity: int = 1):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=capacity)
        self._sender_closed = asyncio.Event()
        self._receiver_closed = False

    @property
    def sender_closed(self) -> bool:
        return self._sender_closed.is_set()

    @property
    def receiver_closed(self) -> bool:
        return self._receiver_closed

    def __len__(self) -> int:
        return self._queue.qsize()

    # ------------------------------------------------------------------
    # Sending side
    # ------------------------------------------------------------------

    async def send(self, item: T) -> None:
        """Wait for room and enqueue ``item``."""
        self._check_open()
        await self._queue.put(item)

    def try_send(self, item: T) -> None:
        """Enqueue without waiting; raises ChannelFull when at capacity."""
        self._check_open()
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull as exc:
            raise ChannelFull(f"channel full (capacity {self.capacity})") from exc

    def close(self) -> None:
        """Close the sending side. Queued items can still be received."""
        self._sender_closed.set()

    def _check_open(self) -> None:
        if self._receiver_closed:
            raise ChannelClosed("receiver closed")
        if self.sender_closed:
            raise ChannelClosed("sender closed")

    # ------------------------------------------------------------------
    # Receiving side
    # ------------------------------------------------------------------

    async def receive(self) -> T:
        """
        Wait for the next item.

        Raises:
            ChannelClosed: once the sender is closed and nothing is queued.
        """
        while True:
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self.sender_closed or self._receiver_closed:
                raise ChannelClosed("channel closed")

            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._sender_closed.wait())
            try:
                done, _ = await asyncio.wait(
                    {getter, closer}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                closer.cancel()
                if not getter.done():
                    getter.cancel()

            if getter in done:
                return getter.result()

    def try_receive(self) -> T | None:
        """Return the next item, or None if nothing is queued."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def close_receiver(self) -> None:
        """Stop accepting items; anything still queued is dropped."""
        self._receiver_closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
