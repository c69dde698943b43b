"""Ordered asyncio channels between actors.

Many producers may hold a Sender; exactly one consumer holds the Receiver.
Items are delivered in the order they arrived, whichever producer sent
them. Either side can hang up:

- once every Sender is closed and the buffer is drained, `recv` raises
  ChannelClosed;
- once the Receiver is closed, `send` raises ChannelClosed.

Usage:
    tx, rx = channel()
    await tx.send(item)
    item = await rx.recv()
"""

import asyncio
from collections import deque
from typing import Deque, Generic, Tuple, TypeVar

T = TypeVar("T")


class ChannelClosed(Exception):
    """The other end of the channel has gone away."""


class _ChannelState(Generic[T]):
    """State shared by every handle of one channel."""

    def __init__(self, capacity: int):
        self.buffer: Deque[T] = deque()
        self.capacity = capacity
        self.senders = 1
        self.receiver_closed = False
        self.cond = asyncio.Condition()

    def is_full(self) -> bool:
        return self.capacity > 0 and len(self.buffer) >= self.capacity


class Sender(Generic[T]):
    """Producer handle. Clone it to hand another producer its own handle."""

    def __init__(self, state: _ChannelState[T]):
        self._state = state
        self._closed = False

    async def send(self, item: T) -> None:
        """Queue an item, waiting for room if the channel is bounded.

        Raises:
            ChannelClosed: The receiver is closed, or this handle is.
        """
        if self._closed:
            raise ChannelClosed("send on a closed sender")

        state = self._state
        async with state.cond:
            while state.is_full() and not state.receiver_closed:
                await state.cond.wait()
            if state.receiver_closed:
                raise ChannelClosed("receiver is closed")
            state.buffer.append(item)
            state.cond.notify_all()

    def clone(self) -> "Sender[T]":
        """Another handle onto the same channel."""
        if self._closed:
            raise ChannelClosed("cannot clone a closed sender")
        self._state.senders += 1
        return Sender(self._state)

    async def close(self) -> None:
        """Drop this handle. The last one to close ends the stream."""
        if self._closed:
            return
        self._closed = True

        state = self._state
        async with state.cond:
            state.senders -= 1
            state.cond.notify_all()

    @property
    def is_closed(self) -> bool:
        """True if this handle is closed or nobody is receiving."""
        return self._closed or self._state.receiver_closed


class Receiver(Generic[T]):
    """Consumer handle. There is only ever one per channel."""

    def __init__(self, state: _ChannelState[T]):
        self._state = state

    async def recv(self) -> T:
        """Take the oldest item, waiting until one arrives.

        Raises:
            ChannelClosed: Every sender is closed and nothing is buffered,
                or this receiver is closed.
        """
        state = self._state
        async with state.cond:
            while not state.buffer and state.senders > 0 and not state.receiver_closed:
                await state.cond.wait()
            if state.receiver_closed:
                raise ChannelClosed("receiver is closed")
            if state.buffer:
                item = state.buffer.popleft()
                state.cond.notify_all()
                return item
            raise ChannelClosed("all senders are closed")

    async def close(self) -> None:
        """Stop receiving. Buffered items are discarded, senders fail."""
        state = self._state
        async with state.cond:
            state.receiver_closed = True
            state.buffer.clear()
            state.cond.notify_all()

    def is_empty(self) -> bool:
        return not self._state.buffer

    def __len__(self) -> int:
        return len(self._state.buffer)

    def __aiter__(self) -> "Receiver[T]":
        return self

    async def __anext__(self) -> T:
        try:
            return await self.recv()
        except ChannelClosed:
            raise StopAsyncIteration


def channel(capacity: int = 0) -> Tuple[Sender, Receiver]:
    """Create a channel. `capacity` of 0 means unbounded."""
    if capacity < 0:
        raise ValueError(f"capacity must be >= 0, got {capacity}")
    state: _ChannelState = _ChannelState(capacity)
    return Sender(state), Receiver(state)
