"""Stream directions through a proxy link."""

from __future__ import annotations

from enum import IntEnum

__all__ = ["Direction", "InvalidDirectionError", "parse_direction"]


class InvalidDirectionError(ValueError):
    """Raised when a string does not name a stream direction."""

    def __init__(self, value: str = "") -> None:
        super().__init__("stream: invalid direction")
        self.value = value


class Direction(IntEnum):
    """Direction of data through a link: client to upstream or back."""

    UPSTREAM = 0
    DOWNSTREAM = 1
    NUM_DIRECTIONS = 2

    def __str__(self) -> str:
        return self.name.lower()


def parse_direction(value: str) -> Direction:
    """Parse a direction name, ignoring case."""
    lowered = value.lower()
    if lowered == "downstream":
        return Direction.DOWNSTREAM
    if lowered == "upstream":
        return Direction.UPSTREAM
    raise InvalidDirectionError(value)