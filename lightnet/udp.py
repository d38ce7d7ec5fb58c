"""A UDP socket that assembles outgoing datagrams and reads incoming ones piecewise."""

from __future__ import annotations

import socket
from ipaddress import IPv4Address

# largest payload of a single IPv4 UDP datagram
MAX_PAYLOAD = 65507
_RECEIVE_SIZE = 65535


def _resolve(host) -> IPv4Address:
    if isinstance(host, IPv4Address):
        return host
    if isinstance(host, (bytes, bytearray)):
        return IPv4Address(bytes(host))
    try:
        return IPv4Address(host)
    except ValueError:
        return IPv4Address(socket.gethostbyname(host))


class UdpSocket:
    """A non-blocking UDP endpoint.

    Outgoing datagrams are built with :meth:`begin_packet`, any number of
    :meth:`write` calls and :meth:`end_packet`. Incoming datagrams are
    taken one at a time with :meth:`parse_packet` and consumed with
    :meth:`read` and :meth:`peek`.
    """

    def __init__(self, bind_address: str = ""):
        self.bind_address = bind_address
        self.local_port = 0
        self.remote_ip: IPv4Address | None = None
        self.remote_port = 0
        self._sock: socket.socket | None = None
        self._destination: tuple[str, int] | None = None
        self._outgoing = bytearray()
        self._packet = b""
        self._pos = 0

    def begin(self, port: int = 0) -> None:
        """Start listening on ``port``; 0 lets the system pick one.

        Raises OSError when no socket can be opened or bound.
        """
        self.stop()
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind((self.bind_address, port))
        except OSError:
            sock.close()
            raise
        sock.setblocking(False)
        self._sock = sock
        self.local_port = sock.getsockname()[1]
        self._packet = b""
        self._pos = 0

    def stop(self) -> None:
        """Release the socket; calling it on a closed socket does nothing."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        self._destination = None
        self._outgoing.clear()
        self._packet = b""
        self._pos = 0

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise RuntimeError("socket is not open; call begin() first")
        return self._sock

    def begin_packet(self, host, port: int) -> None:
        """Start a datagram for ``host``:``port``.

        Raises ValueError for the unspecified address or port 0.
        """
        address = _resolve(host)
        if address == IPv4Address(0) or port == 0:
            raise ValueError("destination address and port must be non-zero")
        self._destination = (str(address), port)
        self._outgoing.clear()

    def write(self, data) -> int:
        """Append bytes (or one byte given as an int) to the datagram.

        Returns how many bytes were accepted; the datagram is capped at the
        largest UDP payload.
        """
        if self._destination is None:
            raise RuntimeError("no packet started; call begin_packet() first")
        chunk = bytes([data]) if isinstance(data, int) else bytes(data)
        room = MAX_PAYLOAD - len(self._outgoing)
        accepted = chunk[:max(room, 0)]
        self._outgoing += accepted
        return len(accepted)

    def end_packet(self) -> int:
        """Send the datagram built so far and return its size."""
        sock = self._require_socket()
        if self._destination is None:
            raise RuntimeError("no packet started; call begin_packet() first")
        payload = bytes(self._outgoing)
        destination = self._destination
        self._destination = None
        self._outgoing.clear()
        return sock.sendto(payload, destination)

    def parse_packet(self) -> int:
        """Take the next waiting datagram and return its size, or 0 if none.

        Whatever was left unread of the previous datagram is discarded.
        """
        sock = self._require_socket()
        self.flush()
        try:
            data, (host, port) = sock.recvfrom(_RECEIVE_SIZE)
        except (BlockingIOError, InterruptedError):
            return 0
        self._packet = data
        self._pos = 0
        self.remote_ip = IPv4Address(host)
        self.remote_port = port
        return len(data)

    def available(self) -> int:
        """Number of unread bytes in the current datagram."""
        return len(self._packet) - self._pos

    def read(self, size: int | None = None) -> bytes:
        """Read up to ``size`` bytes of the current datagram, all if None."""
        end = len(self._packet) if size is None else min(self._pos + max(size, 0), len(self._packet))
        chunk = self._packet[self._pos:end]
        self._pos = end
        return chunk

    def peek(self) -> int | None:
        """Return the next byte without consuming it, or None if none is left."""
        if self._pos >= len(self._packet):
            return None
        return self._packet[self._pos]

    def flush(self) -> None:
        """Discard the rest of the current datagram."""
        self._packet = b""
        self._pos = 0

    def __enter__(self) -> UdpSocket:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()