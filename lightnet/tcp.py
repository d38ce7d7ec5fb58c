"""A TCP client with buffered, non-blocking reads."""

from __future__ import annotations

import select
import socket
import time
from ipaddress import IPv4Address

_UNSPECIFIED = IPv4Address(0)
_BROADCAST = IPv4Address(0xFFFFFFFF)
_CHUNK = 4096


def _resolve(host) -> IPv4Address:
    if isinstance(host, IPv4Address):
        return host
    if isinstance(host, (bytes, bytearray)):
        return IPv4Address(bytes(host))
    try:
        return IPv4Address(host)
    except ValueError:
        return IPv4Address(socket.gethostbyname(host))


class TcpClient:
    """A TCP connection to one remote host.

    ``timeout`` (seconds) bounds how long :meth:`connect` waits for the
    connection and how long :meth:`stop` waits for the peer to close.
    Incoming data is gathered without blocking: :meth:`available`,
    :meth:`read` and :meth:`peek` only see what has already arrived.
    """

    def __init__(self, timeout: float = 1.0):
        self.timeout = timeout
        self._sock: socket.socket | None = None
        self._buffer = bytearray()
        self._eof = False
        self._remote: tuple[IPv4Address, int] | None = None

    def __bool__(self) -> bool:
        return self._sock is not None

    @property
    def remote_ip(self) -> IPv4Address:
        """Address of the peer, 0.0.0.0 when not connected."""
        return self._remote[0] if self._remote else _UNSPECIFIED

    @property
    def remote_port(self) -> int:
        """The peer's TCP endpoint number, 0 when not connected."""
        return self._remote[1] if self._remote else 0

    @property
    def local_port(self) -> int:
        """The local TCP endpoint number, 0 when not connected."""
        if self._sock is None:
            return 0
        return self._sock.getsockname()[1]

    def connect(self, host, port: int) -> None:
        """Connect to ``host``:``port``, dropping any earlier connection.

        ``host`` is an address or a name to look up. Raises ValueError for
        the unspecified or broadcast address and OSError when the name
        cannot be resolved or the connection cannot be made.
        """
        if self._sock is not None:
            self._close()
        address = _resolve(host)
        if address in (_UNSPECIFIED, _BROADCAST):
            raise ValueError(f"cannot connect to {address}")
        sock = socket.create_connection((str(address), port), timeout=self.timeout)
        self._sock = sock
        self._buffer.clear()
        self._eof = False
        self._remote = (address, port)

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise ConnectionError("not connected")
        return self._sock

    def _fill(self) -> None:
        sock = self._sock
        if sock is None or self._eof:
            return
        try:
            while select.select([sock], [], [], 0)[0]:
                chunk = sock.recv(_CHUNK)
                if not chunk:
                    self._eof = True
                    break
                self._buffer += chunk
        except OSError:
            self._eof = True

    def write(self, data) -> int:
        """Send bytes (or one byte given as an int); returns how many were sent."""
        sock = self._require_socket()
        payload = bytes([data]) if isinstance(data, int) else bytes(data)
        sock.sendall(payload)
        return len(payload)

    def available(self) -> int:
        """Number of bytes that can be read without waiting."""
        if self._sock is None:
            return 0
        self._fill()
        return len(self._buffer)

    def read(self, size: int | None = None) -> bytes:
        """Read up to ``size`` bytes already received, all of them if None."""
        self._fill()
        end = len(self._buffer) if size is None else min(max(size, 0), len(self._buffer))
        chunk = bytes(self._buffer[:end])
        del self._buffer[:end]
        return chunk

    def peek(self) -> int | None:
        """Return the next byte without consuming it, or None if none is waiting."""
        if self._sock is None:
            return None
        self._fill()
        return self._buffer[0] if self._buffer else None

    def connected(self) -> bool:
        """True while the connection is up or unread data remains."""
        if self._sock is None:
            return False
        self._fill()
        return not (self._eof and not self._buffer)

    def stop(self) -> None:
        """Close gracefully, waiting up to ``timeout`` for the peer to close."""
        sock = self._sock
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_WR)
            deadline = time.monotonic() + self.timeout
            while not self._eof:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                if select.select([sock], [], [], remaining)[0] and not sock.recv(_CHUNK):
                    break
        except OSError:
            pass
        self._close()

    def _close(self) -> None:
        if self._sock is not None:
            self._sock.close()
        self._sock = None
        self._buffer.clear()
        self._eof = False
        self._remote = None

    def __enter__(self) -> TcpClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()