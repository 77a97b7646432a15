"""The built-in toxics that alter data flowing through a link."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass

from toxiproxy.io_chan import StreamChunk, select
from toxiproxy.toxic import OutputTimeout, Toxic, ToxicStub, register

__all__ = [
    "BandwidthToxic",
    "LatencyToxic",
    "LimitDataToxicState",
    "LimitDataToxic",
    "ResetToxic",
    "SlicerToxic",
    "SlowCloseToxic",
    "TimeoutToxic",
]

_log = logging.getLogger(__name__)

# How long an interrupted toxic waits to hand on data it already holds.
_FLUSH_TIMEOUT = 5.0


def _flush_on_interrupt(stub: ToxicStub, chunk: StreamChunk) -> None:
    """Pass on a chunk held at interrupt time so no data is dropped."""
    try:
        stub.write_output(chunk, _FLUSH_TIMEOUT)
    except OutputTimeout as exc:
        _log.warning("Could not write last packets after interrupt to output: %s", exc)


@dataclass
class BandwidthToxic(Toxic):
    """Passes data through at a limited rate, in KB/s."""

    rate: int = 0

    def pipe(self, stub: ToxicStub) -> None:
        sleep = 0.0
        while True:
            index, chunk = select([stub.interrupt, stub.input])
            if index == 0:
                _log.debug("BandwidthToxic was interrupted")
                return
            if chunk is None:
                stub.close()
                return
            if self.rate <= 0:
                sleep = 0.0
            else:
                sleep += len(chunk.data) / (self.rate * 1000)

            # At low rates, send the data in pieces at 100 millisecond intervals.
            piece = self.rate * 100
            while piece > 0 and len(chunk.data) > piece:
                if select([stub.interrupt], timeout=0.1) is not None:
                    _log.debug("BandwidthToxic was interrupted during writing data")
                    _flush_on_interrupt(stub, chunk)
                    return
                stub.output.send(StreamChunk(chunk.data[:piece], chunk.timestamp))
                chunk.data = chunk.data[piece:]
                sleep -= 0.1

            start = time.monotonic()
            if select([stub.interrupt], timeout=max(sleep, 0.0)) is not None:
                _log.debug("BandwidthToxic was interrupted during writing data")
                _flush_on_interrupt(stub, chunk)
                return
            # Timers are not exact, so carry the error into the next sleep.
            sleep -= time.monotonic() - start
            stub.output.send(chunk)


@dataclass
class LatencyToxic(Toxic):
    """Delays data by latency +/- jitter, both in milliseconds."""

    latency: int = 0
    jitter: int = 0

    def get_buffer_size(self) -> int:
        return 1024

    def _delay(self) -> float:
        delay = self.latency
        if self.jitter > 0:
            delay += random.randrange(self.jitter * 2) - self.jitter
        return delay / 1000

    def pipe(self, stub: ToxicStub) -> None:
        while True:
            index, chunk = select([stub.interrupt, stub.input])
            if index == 0:
                return
            if chunk is None:
                stub.close()
                return
            sleep = self._delay() - (time.monotonic() - chunk.timestamp)
            if select([stub.interrupt], timeout=max(sleep, 0.0)) is not None:
                # Leave at once without the latency, keeping the data.
                stub.output.send(chunk)
                return
            chunk.timestamp += sleep
            stub.output.send(chunk)


@dataclass
class LimitDataToxicState:
    """Bytes already passed on over one connection."""

    bytes_transmitted: int = 0


@dataclass
class LimitDataToxic(Toxic):
    """Closes the connection once a number of bytes has been passed on."""

    bytes: int = 0

    def new_state(self) -> LimitDataToxicState:
        return LimitDataToxicState()

    def pipe(self, stub: ToxicStub) -> None:
        state: LimitDataToxicState = stub.state
        remaining = self.bytes - state.bytes_transmitted
        while True:
            index, chunk = select([stub.interrupt, stub.input])
            if index == 0:
                return
            if chunk is None:
                stub.close()
                return

            remaining = max(remaining, 0)
            if remaining < len(chunk.data):
                chunk = StreamChunk(chunk.data[:remaining], chunk.timestamp)

            if chunk.data:
                stub.output.send(chunk)
                state.bytes_transmitted += len(chunk.data)

            remaining = self.bytes - state.bytes_transmitted
            if remaining <= 0:
                stub.close()
                return


@dataclass
class ResetToxic(Toxic):
    """Resets the connection once data arrives, after a timeout in milliseconds.

    The data itself is dropped; a timeout of 0 resets straight away.
    """

    timeout: int = 0

    def pipe(self, stub: ToxicStub) -> None:
        index, _ = select([stub.interrupt, stub.input])
        if index == 0:
            return
        time.sleep(self.timeout / 1000)
        stub.close()


@dataclass
class SlicerToxic(Toxic):
    """Slices data into smaller packets, as real TCP traffic often is.

    ``size_variation`` should be less than ``average_size``; ``delay`` is
    in microseconds between packets.
    """

    average_size: int = 0
    size_variation: int = 0
    delay: int = 0

    def chunk(self, start: int, end: int) -> list[int]:
        """Offsets that slice [start, end) into pieces, as start/end pairs.

        For a size of 100 the result might be
        [0, 18, 18, 43, 43, 67, 67, 77, 77, 100].
        """
        if (end - start) - self.average_size <= self.size_variation:
            return [start, end]
        mid = start + (end - start) // 2
        if self.size_variation > 0:
            mid += random.randrange(self.size_variation * 2) - self.size_variation
        return self.chunk(start, mid) + self.chunk(mid, end)

    def pipe(self, stub: ToxicStub) -> None:
        pause = self.delay / 1_000_000
        while True:
            index, chunk = select([stub.interrupt, stub.input])
            if index == 0:
                return
            if chunk is None:
                stub.close()
                return
            offsets = self.chunk(0, len(chunk.data))
            for begin, end in zip(offsets[::2], offsets[1::2]):
                stub.output.send(StreamChunk(chunk.data[begin:end], chunk.timestamp))
                if select([stub.interrupt], timeout=pause) is not None:
                    stub.output.send(StreamChunk(chunk.data[end:], chunk.timestamp))
                    return


@dataclass
class SlowCloseToxic(Toxic):
    """Holds back the close of a connection for a delay in milliseconds."""

    delay: int = 0

    def pipe(self, stub: ToxicStub) -> None:
        while True:
            index, chunk = select([stub.interrupt, stub.input])
            if index == 0:
                return
            if chunk is None:
                if select([stub.interrupt], timeout=self.delay / 1000) is None:
                    stub.close()
                return
            stub.output.send(chunk)


@dataclass
class TimeoutToxic(Toxic):
    """Drops all data and closes the connection after a timeout in milliseconds.

    With a timeout of 0 the connection is never closed by the toxic.
    """

    timeout: int = 0

    def pipe(self, stub: ToxicStub) -> None:
        wait = self.timeout / 1000 if self.timeout > 0 else None
        while True:
            result = select([stub.interrupt, stub.input], timeout=wait)
            if result is None:
                stub.close()
                return
            index, chunk = result
            if index == 0:
                return
            if chunk is None:
                stub.close()
                return
            # The data is dropped.

    def cleanup(self, stub: ToxicStub) -> None:
        stub.close()


register("bandwidth", BandwidthToxic)
register("latency", LatencyToxic)
register("limit_data", LimitDataToxic)
register("reset_peer", ResetToxic)
register("slicer", SlicerToxic)
register("slow_close", SlowCloseToxic)
register("timeout", TimeoutToxic)