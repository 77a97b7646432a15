"""Thread-safe channels and stream adapters over them."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Sequence

__all__ = [
    "StreamChunk",
    "ChannelClosed",
    "Channel",
    "select",
    "ReadInterrupted",
    "ChanWriter",
    "ChanReader",
]

# One condition guards every channel, which makes waiting on several
# channels at once (select) straightforward and race free.
_cond = threading.Condition()


@dataclass
class StreamChunk:
    """A piece of stream data with the time it was received."""

    data: bytes
    timestamp: float = field(default_factory=time.monotonic)


class ChannelClosed(Exception):
    """Raised when sending on, or closing, a closed channel."""


class _SendGroup:
    __slots__ = ("done",)

    def __init__(self) -> None:
        self.done = False


class _Offer:
    __slots__ = ("item", "group", "taken")

    def __init__(self, item: Any, group: _SendGroup) -> None:
        self.item = item
        self.group = group
        self.taken = False


class Channel:
    """A channel between threads; capacity 0 makes every send a hand-over.

    Receiving from a closed, drained channel yields None.
    """

    def __init__(self, capacity: int = 0) -> None:
        if capacity < 0:
            raise ValueError("capacity must not be negative")
        self.capacity = capacity
        self._buffer: deque[Any] = deque()
        self._offers: deque[_Offer] = deque()
        self._closed = False

    def __len__(self) -> int:
        with _cond:
            return len(self._buffer)

    @property
    def is_closed(self) -> bool:
        with _cond:
            return self._closed

    def send(self, item: Any, timeout: float | None = None) -> None:
        """Send an item, waiting at most `timeout` seconds for room."""
        if select([(self, item)], timeout) is None:
            raise TimeoutError("could not send on channel in time")

    def receive(self, timeout: float | None = None) -> Any:
        """Receive an item, waiting at most `timeout` seconds for one."""
        result = select([self], timeout)
        if result is None:
            raise TimeoutError("could not receive from channel in time")
        return result[1]

    def close(self) -> None:
        """Close the channel; receivers get None once it is drained."""
        with _cond:
            if self._closed:
                raise ChannelClosed("close of closed channel")
            self._closed = True
            _cond.notify_all()

    def _try_receive(self) -> tuple[bool, Any]:
        if self._buffer:
            item = self._buffer.popleft()
            _cond.notify_all()
            return True, item
        while self._offers:
            offer = self._offers.popleft()
            if offer.group.done:
                continue
            offer.group.done = True
            offer.taken = True
            _cond.notify_all()
            return True, offer.item
        if self._closed:
            return True, None
        return False, None


def select(channels: Sequence[Any], timeout: float | None = None) -> tuple[int, Any] | None:
    """Wait until one case is ready and perform it.

    A case is a Channel to receive from, or a (Channel, item) pair to send.
    Returns (index, received value or None for a send), or None when the
    timeout passes first. A timeout of 0 polls without waiting.
    """
    cases = list(channels)
    deadline = None if timeout is None else time.monotonic() + timeout
    group = _SendGroup()
    offers: dict[int, _Offer] = {}
    with _cond:
        try:
            while True:
                for index, offer in offers.items():
                    if offer.taken:
                        return index, None
                for index, case in enumerate(cases):
                    if isinstance(case, Channel):
                        ready, value = case._try_receive()
                        if ready:
                            group.done = True
                            return index, value
                        continue
                    channel, item = case
                    if channel._closed:
                        raise ChannelClosed("send on closed channel")
                    if channel.capacity > 0:
                        if len(channel._buffer) < channel.capacity:
                            group.done = True
                            channel._buffer.append(item)
                            _cond.notify_all()
                            return index, None
                    elif index not in offers:
                        offer = _Offer(item, group)
                        offers[index] = offer
                        channel._offers.append(offer)
                        _cond.notify_all()
                if deadline is None:
                    _cond.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    _cond.wait(remaining)
        finally:
            group.done = True
            for index, offer in offers.items():
                if not offer.taken:
                    try:
                        cases[index][0]._offers.remove(offer)
                    except ValueError:
                        pass


class ReadInterrupted(Exception):
    """Raised when a blocking read is interrupted through its channel."""

    def __init__(self) -> None:
        super().__init__("read interrupted by channel")


class ChanWriter:
    """A writable stream that sends each write as a StreamChunk."""

    def __init__(self, output: Channel) -> None:
        self._output = output

    def write(self, buf: bytes) -> int:
        """Send a copy of `buf`; the whole buffer is always written."""
        self._output.send(StreamChunk(bytes(buf), time.monotonic()))
        return len(buf)

    def close(self) -> None:
        self._output.close()


class ChanReader:
    """A readable stream fed by StreamChunks from a channel."""

    def __init__(self, input: Channel) -> None:
        self._input = input
        self._interrupt = Channel()
        self._buffer: bytes | None = b""

    def set_interrupt(self, interrupt: Channel) -> None:
        """Use `interrupt` to break a blocking read."""
        self._interrupt = interrupt

    def read(self, size: int) -> bytes:
        """Read up to `size` bytes; b"" means the stream has ended.

        Blocks until data is available and raises ReadInterrupted when the
        interrupt channel fires first.
        """
        if self._buffer is None:
            return b""
        out = self._buffer[:size]
        self._buffer = self._buffer[len(out):]
        if len(out) == size:
            return out
        if out:
            # Some data is at hand, so only take more if it is ready now.
            result = select([self._input], timeout=0)
            if result is None:
                return out
            return out + self._take(result[1], size - len(out))
        index, chunk = select([self._input, self._interrupt])
        if index == 1:
            self._buffer = b""
            raise ReadInterrupted()
        return self._take(chunk, size)

    def _take(self, chunk: StreamChunk | None, size: int) -> bytes:
        if chunk is None:
            self._buffer = None
            return b""
        self._buffer = chunk.data[size:]
        return chunk.data[:size]