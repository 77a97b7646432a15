"""Toxics, the stubs they run on, and the registry of toxic types."""

from __future__ import annotations

import dataclasses
import random
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from toxiproxy.direction import Direction
from toxiproxy.io_chan import Channel, StreamChunk, select

__all__ = [
    "Toxic",
    "NoopToxic",
    "ToxicWrapper",
    "OutputTimeout",
    "ToxicStub",
    "register",
    "new_toxic",
    "count",
]


class Toxic(ABC):
    """Something that alters how data flows through a link.

    A toxic holds only its settings; per-connection data lives on the stub,
    so one toxic can serve many connections. Optional hooks a toxic may
    define: ``cleanup(stub)``, ``get_buffer_size()`` and ``new_state()``.
    """

    @abstractmethod
    def pipe(self, stub: ToxicStub) -> None:
        """Move data through the stub until it closes or is interrupted."""


@dataclass
class NoopToxic(Toxic):
    """Passes all data through untouched."""

    def pipe(self, stub: ToxicStub) -> None:
        while True:
            index, chunk = select([stub.interrupt, stub.input])
            if index == 0:
                return
            if chunk is None:
                stub.close()
                return
            stub.output.send(chunk)


@dataclass
class ToxicWrapper:
    """A toxic with its name, type and placement in a chain."""

    toxic: Toxic = field(default_factory=NoopToxic)
    name: str = ""
    type: str = ""
    stream: str = "downstream"
    toxicity: float = 1.0
    direction: Direction = Direction.DOWNSTREAM
    index: int = 0
    buffer_size: int = 0

    def as_dict(self) -> dict[str, Any]:
        """The public JSON shape of this toxic."""
        if dataclasses.is_dataclass(self.toxic):
            attributes = dataclasses.asdict(self.toxic)
        else:
            attributes = dict(vars(self.toxic))
        return {
            "attributes": attributes,
            "name": self.name,
            "type": self.type,
            "stream": self.stream,
            "toxicity": self.toxicity,
        }


class OutputTimeout(TimeoutError):
    """Raised when a stub cannot hand data on in time."""


class ToxicStub:
    """Per-connection plumbing a toxic reads from and writes to."""

    def __init__(self, input: Channel, output: Channel) -> None:
        self.input = input
        self.output = output
        self.state: Any = None
        self.interrupt = Channel()
        self._closed = Channel()
        self._running = threading.Event()
        self._running.set()
        self._close_lock = threading.Lock()

    def run(self, toxic: ToxicWrapper) -> None:
        """Run the toxic, or a noop one depending on its toxicity."""
        running = threading.Event()
        self._running = running
        try:
            if random.random() < toxic.toxicity:
                toxic.toxic.pipe(self)
            else:
                NoopToxic().pipe(self)
        finally:
            running.set()

    def write_output(self, chunk: StreamChunk | None, timeout: float = 0) -> None:
        """Send to the output, giving up after `timeout` seconds (0 waits)."""
        if not timeout:
            self.output.send(chunk)
            return
        try:
            self.output.send(chunk, timeout=timeout)
        except TimeoutError:
            raise OutputTimeout(
                f"timeout: could not write to output in {int(timeout)} seconds"
            ) from None

    def interrupt_toxic(self) -> bool:
        """Stop the running toxic; False if the stub is already closed."""
        index, _ = select([self._closed, (self.interrupt, None)])
        if index == 0:
            return False
        self._running.wait()
        return True

    def closed(self) -> bool:
        return self._closed.is_closed

    def close(self) -> None:
        """Close the stub and its output; closing again does nothing."""
        with self._close_lock:
            if not self._closed.is_closed:
                self._closed.close()
                self.output.close()


_registry: dict[str, type[Toxic]] = {}
_registry_lock = threading.RLock()


def register(type_name: str, toxic_class: type[Toxic]) -> None:
    """Make a toxic class available under `type_name`."""
    with _registry_lock:
        _registry[type_name] = toxic_class


def new_toxic(wrapper: ToxicWrapper) -> Toxic | None:
    """Give the wrapper a fresh toxic of its type; None if the type is unknown."""
    with _registry_lock:
        toxic_class = _registry.get(wrapper.type)
    if toxic_class is None:
        return None
    wrapper.toxic = toxic_class()
    get_buffer_size = getattr(wrapper.toxic, "get_buffer_size", None)
    wrapper.buffer_size = get_buffer_size() if callable(get_buffer_size) else 0
    return wrapper.toxic


def count() -> int:
    """Number of registered toxic types."""
    with _registry_lock:
        return len(_registry)


register("noop", NoopToxic)