import socket
import time
from ipaddress import IPv4Address

import pytest

from lightnet.tcp import TcpClient


@pytest.fixture
def listener():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    server.settimeout(5)
    yield server
    server.close()


def _connect(listener, timeout=0.5):
    client = TcpClient(timeout=timeout)
    client.connect("127.0.0.1", listener.getsockname()[1])
    peer, _ = listener.accept()
    return client, peer


def _wait_for(condition, limit=5.0):
    deadline = time.monotonic() + limit
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


def test_write_reaches_peer(listener):
    client, peer = _connect(listener)
    try:
        assert client.write(b"GET / HTTP/1.1\r\n") == 16
        assert client.write(ord("x")) == 1
        peer.settimeout(5)
        received = b""
        while len(received) < 17:
            received += peer.recv(100)
        assert received == b"GET / HTTP/1.1\r\nx"
    finally:
        peer.close()
        client.stop()


def test_read_and_peek(listener):
    client, peer = _connect(listener)
    try:
        peer.sendall(b"hello")
        assert _wait_for(lambda: client.available() == 5)
        assert client.peek() == ord("h")
        assert client.available() == 5
        assert client.read(2) == b"he"
        assert client.read(None) == b"llo"
        assert client.read(1) == b""
        assert client.peek() is None
    finally:
        peer.close()
        client.stop()


def test_connected_until_data_consumed_after_peer_close(listener):
    client, peer = _connect(listener)
    peer.sendall(b"bye")
    peer.close()
    assert _wait_for(lambda: client.available() == 3)
    assert client.connected() is True
    assert client.read() == b"bye"
    assert _wait_for(lambda: not client.connected())
    client.stop()
    assert client.connected() is False


def test_remote_and_local_ports(listener):
    client, peer = _connect(listener)
    try:
        assert client.remote_port == listener.getsockname()[1]
        assert client.remote_ip == IPv4Address("127.0.0.1")
        assert client.local_port == peer.getpeername()[1]
        assert bool(client) is True
    finally:
        peer.close()
        client.stop()
    assert client.remote_port == 0
    assert client.local_port == 0
    assert bool(client) is False


@pytest.mark.parametrize("host", ["0.0.0.0", "255.255.255.255"])
def test_rejects_unusable_addresses(host):
    client = TcpClient()
    with pytest.raises(ValueError):
        client.connect(host, 80)
    assert client.connected() is False


def test_connection_refused():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    client = TcpClient(timeout=1.0)
    with pytest.raises(OSError):
        client.connect("127.0.0.1", port)
    assert client.connected() is False


def test_unconnected_client():
    client = TcpClient()
    assert client.available() == 0
    assert client.read(4) == b""
    assert client.peek() is None
    assert client.connected() is False
    with pytest.raises(ConnectionError):
        client.write(b"data")


def test_context_manager_closes(listener):
    port = listener.getsockname()[1]
    with TcpClient(timeout=0.2) as client:
        client.connect(IPv4Address("127.0.0.1"), port)
        peer, _ = listener.accept()
        assert client.connected() is True
    assert client.connected() is False
    peer.settimeout(5)
    assert peer.recv(10) == b""
    peer.close()


def test_reconnect_replaces_connection(listener):
    port = listener.getsockname()[1]
    client, first = _connect(listener, timeout=0.2)
    client.connect("127.0.0.1", port)
    second, _ = listener.accept()
    try:
        first.settimeout(5)
        assert first.recv(10) == b""
        client.write(b"ok")
        second.settimeout(5)
        assert second.recv(10) == b"ok"
    finally:
        first.close()
        second.close()
        client.stop()