"""A named set of proxies that guards against duplicates."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from toxiproxy.toxic_collection import BadRequestBody

__all__ = ["ProxyAlreadyExists", "ProxyNotFound", "MissingField", "ProxyCollection"]


class ProxyAlreadyExists(ValueError):
    """Raised when a proxy name is already taken."""

    def __init__(self) -> None:
        super().__init__("proxy already exists")


class ProxyNotFound(LookupError):
    """Raised when no proxy has the given name."""

    def __init__(self) -> None:
        super().__init__("proxy not found")


class MissingField(ValueError):
    """Raised when a required field is absent from a request."""

    def __init__(self, detail: str = "") -> None:
        message = "missing required field"
        super().__init__(f"{message}: {detail}" if detail else message)
        self.detail = detail


class _Proxy(Protocol):
    name: str
    listen: str
    upstream: str
    enabled: bool

    def start(self) -> None: ...

    def stop(self) -> None: ...


@dataclass
class _ProxySpec:
    name: str
    listen: str
    upstream: str
    enabled: bool


def _decode(data: Any) -> Any:
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


def _field(item: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = item.get(key)
    if value is None:
        return default
    if not isinstance(value, kind):
        raise BadRequestBody(f"{key} has the wrong type")
    return value


def _parse_specs(data: Any) -> list[_ProxySpec]:
    items = _decode(data)
    if items is None:
        items = []
    if not isinstance(items, list):
        raise BadRequestBody("expected a JSON array of proxies")
    specs = []
    for item in items:
        if item is None:
            item = {}
        if not isinstance(item, dict):
            raise BadRequestBody("expected a JSON object for each proxy")
        specs.append(
            _ProxySpec(
                name=_field(item, "name", str, ""),
                listen=_field(item, "listen", str, ""),
                upstream=_field(item, "upstream", str, ""),
                enabled=_field(item, "enabled", bool, True),
            )
        )
    # Validate everything before any proxy is created.
    for position, spec in enumerate(specs, start=1):
        if not spec.name:
            raise MissingField(f"name at proxy {position}")
        if not spec.upstream:
            raise MissingField(f"upstream at proxy {position}")
    return specs


class ProxyCollection:
    """The proxies of one instance, keyed by unique name."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._proxies: dict[str, _Proxy] = {}

    def add(self, proxy: _Proxy, start: bool) -> None:
        """Add a new proxy, starting it first if asked to."""
        with self._lock:
            if proxy.name in self._proxies:
                raise ProxyAlreadyExists()
            if start:
                proxy.start()
            self._proxies[proxy.name] = proxy

    def add_or_replace(self, proxy: _Proxy, start: bool) -> None:
        """Add a proxy, stopping and replacing one of the same name.

        An existing proxy with the same listen and upstream addresses is kept.
        """
        with self._lock:
            existing = self._proxies.get(proxy.name)
            if existing is not None:
                if existing.listen == proxy.listen and existing.upstream == proxy.upstream:
                    return
                existing.stop()
            if start:
                proxy.start()
            self._proxies[proxy.name] = proxy

    def populate_json(
        self, factory: Callable[[str, str, str], _Proxy], data: Any
    ) -> list[_Proxy]:
        """Create proxies from a JSON array using `factory(name, listen, upstream)`.

        Proxies added before a failure stay in the collection.
        """
        specs = _parse_specs(data)
        proxies = []
        for spec in specs:
            proxy = factory(spec.name, spec.listen, spec.upstream)
            self.add_or_replace(proxy, spec.enabled)
            proxies.append(proxy)
        return proxies

    def proxies(self) -> dict[str, _Proxy]:
        """A snapshot of the proxies by name."""
        with self._lock:
            return dict(self._proxies)

    def get(self, name: str) -> _Proxy:
        with self._lock:
            return self._get(name)

    def remove(self, name: str) -> None:
        """Stop a proxy and drop it from the collection."""
        with self._lock:
            proxy = self._get(name)
            proxy.stop()
            del self._proxies[proxy.name]

    def clear(self) -> None:
        """Stop and drop every proxy."""
        with self._lock:
            for proxy in list(self._proxies.values()):
                proxy.stop()
                del self._proxies[proxy.name]

    def _get(self, name: str) -> _Proxy:
        try:
            return self._proxies[name]
        except KeyError:
            raise ProxyNotFound() from None