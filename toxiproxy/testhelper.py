"""Small TCP servers and timing helpers for exercising proxies."""

from __future__ import annotations

import queue
import socket
import threading
from typing import Any, Callable

__all__ = [
    "TCPServer",
    "new_tcp_server",
    "with_tcp_server",
    "TimeoutAfterError",
    "timeout_after",
    "Upstream",
]

_POLL_INTERVAL = 0.05


def _split_address(addr: str) -> tuple[str, int]:
    host, _, port = addr.rpartition(":")
    return host or "localhost", int(port)


def _format_address(sock: socket.socket) -> str:
    host, port = sock.getsockname()[:2]
    return f"{host}:{port}"


def _accept(listener: socket.socket, stopped: Callable[[], bool]) -> socket.socket:
    """Accept a connection, giving up once `stopped` reports true."""
    while True:
        if stopped():
            raise OSError("listener closed")
        try:
            conn, _ = listener.accept()
        except socket.timeout:
            continue
        conn.settimeout(None)
        return conn


class TCPServer:
    """A server that reads one connection to its end and reports the bytes."""

    def __init__(self, addr: str = "localhost:0") -> None:
        self.addr = addr
        self.response: queue.Queue[bytes] = queue.Queue(maxsize=1)
        self._server: socket.socket | None = None
        self._closing = False

    def run(self) -> None:
        """Start listening; `addr` then holds the bound address."""
        self._server = socket.create_server(_split_address(self.addr))
        self._server.settimeout(_POLL_INTERVAL)
        self.addr = _format_address(self._server)

    def handle_connection(self) -> bytes:
        """Accept one client, read until it closes and publish the data."""
        if self._server is None:
            raise OSError("server is not running")
        conn = _accept(self._server, lambda: self._closing)
        with conn:
            chunks = []
            while data := conn.recv(65536):
                chunks.append(data)
        received = b"".join(chunks)
        self.response.put(received)
        return received

    def close(self) -> None:
        self._closing = True
        if self._server is not None:
            self._server.close()


def new_tcp_server() -> TCPServer:
    """Create a TCP server listening on a free local port."""
    server = TCPServer()
    server.run()
    return server


def with_tcp_server(block: Callable[[str, "queue.Queue[bytes]"], Any]) -> Any:
    """Run `block(addr, response)` against a server that handles one client."""
    server = new_tcp_server()
    errors: list[OSError] = []

    def handle() -> None:
        try:
            server.handle_connection()
        except OSError as exc:
            if not server._closing:
                errors.append(exc)

    thread = threading.Thread(target=handle, daemon=True)
    thread.start()
    try:
        result = block(server.addr, server.response)
    finally:
        server.close()
        thread.join(timeout=1.0)
    if errors:
        raise errors[0]
    return result


class TimeoutAfterError(TimeoutError):
    """Raised when a function does not finish in time."""


def timeout_after(after: float, func: Callable[[], Any]) -> Any:
    """Run `func` in a thread and return its result, waiting `after` seconds."""
    done = threading.Event()
    outcome: dict[str, Any] = {}

    def runner() -> None:
        try:
            outcome["result"] = func()
        except BaseException as exc:  # re-raised in the caller's thread
            outcome["error"] = exc
        finally:
            done.set()

    threading.Thread(target=runner, daemon=True).start()
    if not done.wait(after):
        raise TimeoutAfterError(f"timed out after {after}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("result")


class Upstream:
    """A listener that accepts one connection, handing it out or draining it."""

    def __init__(self, ignore_data: bool = False) -> None:
        self.connections: queue.Queue[socket.socket] = queue.Queue()
        self._closing = False
        self._listener = socket.create_server(("localhost", 0))
        self._listener.settimeout(_POLL_INTERVAL)
        self._thread = threading.Thread(
            target=self._accept, args=(ignore_data,), daemon=True
        )
        self._thread.start()

    def _accept(self, ignore_data: bool) -> None:
        try:
            conn = _accept(self._listener, lambda: self._closing)
        except OSError:
            return
        if not ignore_data:
            self.connections.put(conn)
            return
        with conn:
            try:
                while conn.recv(4000):
                    pass
            except OSError:
                pass

    def close(self) -> None:
        self._closing = True
        self._listener.close()

    def addr(self) -> str:
        return _format_address(self._listener)