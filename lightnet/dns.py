"""Minimal DNS resolver for IPv4 (type A) addresses."""

from __future__ import annotations

import random
import time
from ipaddress import IPv4Address

from .udp import UdpSocket

DNS_PORT = 53

QUERY_RESPONSE_MASK = 1 << 15
RESPONSE_FLAG = 1 << 15
TRUNCATION_FLAG = 1 << 9
RECURSION_DESIRED_FLAG = 1 << 8
RESP_MASK = 15
TYPE_A = 0x0001
CLASS_IN = 0x0001
LABEL_COMPRESSION_MASK = 0xC0
DNS_HEADER_SIZE = 12
TTL_SIZE = 4

# error codes carried by DnsError.code
TIMED_OUT = -1
INVALID_SERVER = -2
TRUNCATED = -3
INVALID_RESPONSE = -4
RESPONSE_ERROR = -5
NO_ANSWERS = -6
BAD_ANSWER_SIZE = -9
NO_ADDRESS = -10

_ATTEMPTS = 3
_POLL_INTERVAL = 0.05


class DnsError(Exception):
    """A lookup failed; ``code`` tells how."""

    def __init__(self, message: str, code: int):
        super().__init__(message)
        self.code = code


def inet_aton(address: str) -> IPv4Address:
    """Parse a dotted-quad address; empty parts count as 0.

    Raises ValueError when the text is not four numbers 0..255 separated
    by three dots.
    """
    parts = []
    accumulator = 0
    for char in address:
        if "0" <= char <= "9":
            accumulator = accumulator * 10 + int(char)
            if accumulator > 255:
                raise ValueError(f"octet out of range in {address!r}")
        elif char == ".":
            if len(parts) == 3:
                raise ValueError(f"too many dots in {address!r}")
            parts.append(accumulator)
            accumulator = 0
        else:
            raise ValueError(f"invalid character {char!r} in {address!r}")
    if len(parts) != 3:
        raise ValueError(f"too few dots in {address!r}")
    parts.append(accumulator)
    return IPv4Address(bytes(parts))


def build_query(request_id: int, name: str) -> bytes:
    """Encode a recursive type A, class IN query for ``name``."""
    header = (request_id & 0xFFFF).to_bytes(2, "big")
    header += RECURSION_DESIRED_FLAG.to_bytes(2, "big")
    header += (1).to_bytes(2, "big") + bytes(6)

    question = bytearray()
    for label in (part for part in name.split(".") if part):
        encoded = label.encode("ascii")
        if len(encoded) > 63:
            raise ValueError(f"label {label!r} is longer than 63 bytes")
        question.append(len(encoded))
        question += encoded
    question.append(0)
    question += TYPE_A.to_bytes(2, "big") + CLASS_IN.to_bytes(2, "big")
    return header + bytes(question)


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def take(self, size: int) -> bytes:
        end = self.pos + size
        if end > len(self.data):
            raise DnsError("response ends unexpectedly", TRUNCATED)
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk

    def byte(self) -> int:
        return self.take(1)[0]

    def word(self) -> int:
        return int.from_bytes(self.take(2), "big")


def parse_response(packet, request_id: int) -> IPv4Address:
    """Return the first type A, class IN address in a response to ``request_id``.

    Raises DnsError with the matching code when the response is short,
    belongs to another request, reports an error or has no usable answer.
    """
    data = bytes(packet)
    if len(data) < DNS_HEADER_SIZE:
        raise DnsError("response shorter than a DNS header", TRUNCATED)
    reader = _Reader(data)
    response_id = reader.word()
    flags = reader.word()
    question_count = reader.word()
    answer_count = reader.word()
    reader.take(4)

    if response_id != request_id & 0xFFFF or flags & QUERY_RESPONSE_MASK != RESPONSE_FLAG:
        raise DnsError("not a response to this request", INVALID_RESPONSE)
    if flags & TRUNCATION_FLAG or flags & RESP_MASK:
        raise DnsError("response is truncated or reports an error", RESPONSE_ERROR)
    if answer_count == 0:
        raise DnsError("response carries no answers", NO_ANSWERS)

    for _ in range(question_count):
        while length := reader.byte():
            reader.take(length)
        reader.take(4)

    for _ in range(answer_count):
        while True:
            length = reader.byte()
            if length & LABEL_COMPRESSION_MASK:
                # a pointer always ends the name
                reader.take(1)
                break
            if length == 0:
                break
            reader.take(length)

        answer_type = reader.word()
        answer_class = reader.word()
        reader.take(TTL_SIZE)
        data_length = reader.word()
        if answer_type == TYPE_A and answer_class == CLASS_IN:
            if data_length != 4:
                raise DnsError("type A answer is not 4 bytes long", BAD_ANSWER_SIZE)
            return IPv4Address(reader.take(4))
        reader.take(data_length)

    raise DnsError("no type A answer in response", NO_ADDRESS)


def _as_address(value) -> IPv4Address | None:
    if value is None:
        return None
    try:
        return IPv4Address(value)
    except ValueError:
        return None


class DnsClient:
    """Resolves host names through one DNS server.

    ``transport`` is a :class:`UdpSocket` or an object with the same
    methods; a new UdpSocket is used when none is given.
    """

    def __init__(self, server, transport=None):
        self.server = _as_address(server)
        self.transport = transport if transport is not None else UdpSocket()
        self.request_id = 0

    def get_host_by_name(self, hostname: str, timeout: float = 5.0) -> IPv4Address:
        """Return the IPv4 address of ``hostname``; dotted quads need no lookup."""
        try:
            return inet_aton(hostname)
        except ValueError:
            pass

        if self.server is None or self.server == IPv4Address(0):
            raise DnsError("no DNS server configured", INVALID_SERVER)

        transport = self.transport
        transport.begin(1024 + (int(time.monotonic() * 1000) & 0xF))
        try:
            self.request_id = random.getrandbits(16)
            transport.begin_packet(str(self.server), DNS_PORT)
            transport.write(build_query(self.request_id, hostname))
            transport.end_packet()
            for attempt in range(_ATTEMPTS):
                try:
                    return self._process_response(timeout)
                except DnsError as error:
                    if error.code != TIMED_OUT or attempt == _ATTEMPTS - 1:
                        raise
            raise DnsError("no response from DNS server", TIMED_OUT)
        finally:
            transport.stop()

    def _process_response(self, timeout: float) -> IPv4Address:
        transport = self.transport
        deadline = time.monotonic() + timeout
        while transport.parse_packet() <= 0:
            if time.monotonic() > deadline:
                raise DnsError("no response from DNS server", TIMED_OUT)
            time.sleep(_POLL_INTERVAL)

        if _as_address(transport.remote_ip) != self.server or transport.remote_port != DNS_PORT:
            raise DnsError("response came from an unexpected sender", INVALID_SERVER)

        data = transport.read(None)
        transport.flush()
        return parse_response(data, self.request_id)