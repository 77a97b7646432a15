"""The chains of toxics that belong to one proxy, and the links they feed."""

from __future__ import annotations

import dataclasses
import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Protocol

from toxiproxy import toxics as _builtin_toxics  # noqa: F401  registers the toxic types
from toxiproxy.direction import Direction, InvalidDirectionError, parse_direction
from toxiproxy.toxic import NoopToxic, Toxic, ToxicWrapper, new_toxic

__all__ = [
    "BadRequestBody",
    "InvalidStream",
    "InvalidToxicType",
    "ToxicAlreadyExists",
    "ToxicNotFound",
    "ToxicCollection",
]

_log = logging.getLogger(__name__)


class BadRequestBody(ValueError):
    """Raised when a request body cannot be decoded."""

    def __init__(self, detail: str = "") -> None:
        message = "bad request body"
        super().__init__(f"{message}: {detail}" if detail else message)
        self.detail = detail


class InvalidStream(ValueError):
    """Raised when a toxic names neither upstream nor downstream."""

    def __init__(self) -> None:
        super().__init__("stream was invalid, can be either upstream or downstream")


class InvalidToxicType(ValueError):
    """Raised when a toxic type is not registered."""

    def __init__(self) -> None:
        super().__init__("invalid toxic type")


class ToxicAlreadyExists(ValueError):
    """Raised when a toxic name is already in use."""

    def __init__(self) -> None:
        super().__init__("toxic already exists")


class ToxicNotFound(LookupError):
    """Raised when no toxic has the given name."""

    def __init__(self) -> None:
        super().__init__("toxic not found")


class _Link(Protocol):
    direction: Direction

    def add_toxic(self, toxic: ToxicWrapper) -> None: ...

    def update_toxic(self, toxic: ToxicWrapper) -> None: ...

    def remove_toxic(self, toxic: ToxicWrapper) -> None: ...


def _decode(data: Any) -> Any:
    """Decode the first JSON value from a string, bytes or readable stream."""
    if hasattr(data, "read"):
        data = data.read()
    if isinstance(data, (bytes, bytearray)):
        try:
            data = bytes(data).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise BadRequestBody(str(exc)) from exc
    try:
        value, _ = json.JSONDecoder().raw_decode(data.lstrip())
    except json.JSONDecodeError as exc:
        raise BadRequestBody(str(exc)) from exc
    return value


def _as_object(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise BadRequestBody("expected a JSON object")
    return value


def _string(obj: dict[str, Any], key: str, default: str) -> str:
    value = obj.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise BadRequestBody(f"{key} must be a string")
    return value


def _number(obj: dict[str, Any], key: str, default: float) -> float:
    value = obj.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise BadRequestBody(f"{key} must be a number")
    return float(value)


def _compatible(current: Any, value: Any) -> bool:
    if isinstance(current, bool):
        return isinstance(value, bool)
    if isinstance(current, int):
        return isinstance(value, int) and not isinstance(value, bool)
    if isinstance(current, float):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if isinstance(current, str):
        return isinstance(value, str)
    return True


def _check_attributes(attrs: Any) -> None:
    if attrs is not None and not isinstance(attrs, dict):
        raise BadRequestBody("attributes must be a JSON object")


def _apply_attributes(toxic: Toxic, attrs: Any) -> None:
    """Set the toxic's settings from a JSON object, ignoring unknown keys."""
    _check_attributes(attrs)
    if not attrs:
        return
    if dataclasses.is_dataclass(toxic):
        names = {f.name for f in dataclasses.fields(toxic)}
    else:
        names = set(vars(toxic))
    updates: dict[str, Any] = {}
    for key, value in attrs.items():
        if key not in names or value is None:
            continue
        current = getattr(toxic, key)
        if not _compatible(current, value):
            raise BadRequestBody(f"cannot use {value!r} for attribute {key}")
        updates[key] = float(value) if isinstance(current, float) else value
    for key, value in updates.items():
        setattr(toxic, key, value)


class ToxicCollection:
    """Toxic chains for both directions of a proxy.

    A hidden noop toxic always heads each chain so that toxics can pause the
    data coming into them by interrupting the toxic before.
    """

    def __init__(self, proxy_name: str = "") -> None:
        self.proxy_name = proxy_name
        self.noop = ToxicWrapper(toxic=NoopToxic(), type="noop")
        self._lock = threading.RLock()
        self._chain: list[list[ToxicWrapper]] = [
            [self.noop] for _ in range(Direction.NUM_DIRECTIONS)
        ]
        self._links: dict[str, _Link] = {}

    def reset_toxics(self) -> None:
        """Remove every toxic, keeping only the hidden noop ones."""
        with self._lock:
            for chain in self._chain:
                while len(chain) > 1:
                    self._chain_remove(chain[1])

    def get_toxic(self, name: str) -> ToxicWrapper | None:
        with self._lock:
            return self._find(name)

    def get_toxic_array(self) -> list[ToxicWrapper]:
        """All visible toxics, upstream chain first, in chain order."""
        with self._lock:
            return [toxic for chain in self._chain for toxic in chain[1:]]

    def add_toxic_json(self, data: Any) -> ToxicWrapper:
        """Create a toxic from a JSON body and append it to its chain."""
        with self._lock:
            obj = _as_object(_decode(data))
            _check_attributes(obj.get("attributes"))
            wrapper = ToxicWrapper(
                toxic=NoopToxic(),
                name=_string(obj, "name", ""),
                type=_string(obj, "type", ""),
                stream=_string(obj, "stream", "downstream"),
                toxicity=_number(obj, "toxicity", 1.0),
            )
            try:
                wrapper.direction = parse_direction(wrapper.stream)
            except InvalidDirectionError:
                raise InvalidStream() from None
            if not wrapper.name:
                wrapper.name = f"{wrapper.type}_{wrapper.stream}"
            if new_toxic(wrapper) is None:
                raise InvalidToxicType()
            if self._find(wrapper.name) is not None:
                raise ToxicAlreadyExists()
            _apply_attributes(wrapper.toxic, obj.get("attributes"))
            self._chain_add(wrapper)
            return wrapper

    def update_toxic_json(self, name: str, data: Any) -> ToxicWrapper:
        """Change a toxic's attributes and toxicity from a JSON body."""
        with self._lock:
            toxic = self._find(name)
            if toxic is None:
                raise ToxicNotFound()
            obj = _as_object(_decode(data))
            toxicity = _number(obj, "toxicity", toxic.toxicity)
            _apply_attributes(toxic.toxic, obj.get("attributes"))
            toxic.toxicity = toxicity
            self._chain_update(toxic)
            return toxic

    def remove_toxic(self, name: str) -> None:
        with self._lock:
            toxic = self._find(name)
            if toxic is None:
                _log.debug("Could not find toxic %s on proxy %s", name, self.proxy_name)
                raise ToxicNotFound()
            self._chain_remove(toxic)

    def add_link(self, name: str, link: _Link) -> None:
        """Register a link so it follows changes to its direction's chain."""
        with self._lock:
            self._links[name] = link

    def remove_link(self, name: str) -> None:
        with self._lock:
            self._links.pop(name, None)

    def _find(self, name: str) -> ToxicWrapper | None:
        for chain in self._chain:
            for toxic in chain[1:]:
                if toxic.name == name:
                    return toxic
        return None

    def _notify(self, direction: Direction, action: Callable[[_Link], None]) -> None:
        links = [link for link in self._links.values() if link.direction == direction]
        if not links:
            return
        with ThreadPoolExecutor(max_workers=len(links)) as pool:
            list(pool.map(action, links))

    def _chain_add(self, toxic: ToxicWrapper) -> None:
        chain = self._chain[toxic.direction]
        toxic.index = len(chain)
        chain.append(toxic)
        self._notify(toxic.direction, lambda link: link.add_toxic(toxic))

    def _chain_update(self, toxic: ToxicWrapper) -> None:
        self._chain[toxic.direction][toxic.index] = toxic
        self._notify(toxic.direction, lambda link: link.update_toxic(toxic))

    def _chain_remove(self, toxic: ToxicWrapper) -> None:
        chain = self._chain[toxic.direction]
        del chain[toxic.index]
        for position in range(toxic.index, len(chain)):
            chain[position].index = position
        _log.debug(
            "Removing toxic %s (%s) from links of proxy %s",
            toxic.name,
            toxic.direction,
            self.proxy_name,
        )
        self._notify(toxic.direction, lambda link: link.remove_toxic(toxic))
        toxic.index = -1