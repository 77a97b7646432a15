import socket
import time

import pytest

from toxiproxy.testhelper import (
    TimeoutAfterError,
    Upstream,
    new_tcp_server,
    timeout_after,
    with_tcp_server,
)


def _connect(addr):
    host, _, port = addr.rpartition(":")
    return socket.create_connection((host, int(port)), timeout=2)


def test_simple_server():
    msg = b"hello world"

    def block(addr, response):
        conn = _connect(addr)
        conn.sendall(msg)
        conn.close()
        return response.get(timeout=2)

    assert with_tcp_server(block) == msg


def test_new_tcp_server_binds_a_port():
    server = new_tcp_server()
    try:
        host, _, port = server.addr.rpartition(":")
        assert int(port) > 0
        assert host
    finally:
        server.close()


def test_with_tcp_server_without_client_returns_block_result():
    assert with_tcp_server(lambda addr, response: addr.count(":")) >= 1


def test_timeout_after():
    assert timeout_after(0.005, lambda: 42) == 42
    with pytest.raises(TimeoutAfterError):
        timeout_after(0.005, lambda: time.sleep(1))


def test_timeout_after_propagates_errors():
    def fail():
        raise KeyError("boom")

    with pytest.raises(KeyError):
        timeout_after(1, fail)


def test_upstream_hands_out_connection():
    upstream = Upstream()
    try:
        client = _connect(upstream.addr())
        server_conn = upstream.connections.get(timeout=2)
        client.sendall(b"ping")
        assert server_conn.recv(4) == b"ping"
        server_conn.close()
        client.close()
    finally:
        upstream.close()


def test_upstream_ignoring_data_keeps_connection_to_itself():
    upstream = Upstream(ignore_data=True)
    try:
        client = _connect(upstream.addr())
        client.sendall(b"discarded")
        time.sleep(0.1)
        assert upstream.connections.empty()
        client.close()
    finally:
        upstream.close()