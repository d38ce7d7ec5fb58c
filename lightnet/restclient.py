"""A small HTTP/1.1 client for simple REST calls over a fresh connection each."""

from __future__ import annotations

import re
import time

from .tcp import TcpClient

DEFAULT_PORT = 80
DEFAULT_CONTENT_TYPE = "x-www-form-urlencoded"
MAX_HEADERS = 10

_POLL_INTERVAL = 0.001
_LEADING_INT = re.compile(rb"[+-]?\d+")


def _encode(text) -> bytes:
    if isinstance(text, (bytes, bytearray)):
        return bytes(text)
    return str(text).encode("utf-8")


def build_request(method, path, host, headers=(), body=None, content_type=DEFAULT_CONTENT_TYPE) -> bytes:
    """Encode a request that asks the server to close the connection afterwards.

    Extra ``headers`` are full header lines without the line ending. The
    Content-Length and Content-Type headers are only sent with a body.
    """
    lines = [_encode(method) + b" " + _encode(path) + b" HTTP/1.1\r\n"]
    lines.extend(_encode(header) + b"\r\n" for header in headers)
    lines.append(b"Host: " + _encode(host) + b"\r\n")
    lines.append(b"Connection: close\r\n")

    payload = None if body is None else _encode(body)
    if payload is not None:
        lines.append(b"Content-Length: %d\r\n" % len(payload))
        lines.append(b"Content-Type: " + _encode(content_type) + b"\r\n")
    lines.append(b"\r\n")
    if payload is not None:
        lines.append(payload + b"\r\n\r\n")
    return b"".join(lines)


def _leading_int(digits: bytes) -> int:
    match = _LEADING_INT.match(digits)
    return int(match.group()) if match else 0


def parse_response(data) -> tuple[int, str]:
    """Split a raw response into its status code and body.

    The status code is the first three non-space characters after the
    first space, read as a number (0 when none is found). The body is
    everything after the first blank line.
    """
    raw = bytes(data)
    in_status = False
    line_is_blank = True
    in_body = False
    digits = b""
    code = 0
    body = bytearray()

    for value in raw:
        char = bytes([value])
        if char == b" " and not in_status:
            in_status = True
        if in_status and len(digits) < 3 and char != b" ":
            digits += char
            if len(digits) == 3:
                code = _leading_int(digits)

        if in_body:
            body += char
            continue
        if char == b"\n":
            if line_is_blank:
                in_body = True
            line_is_blank = True
        elif char != b"\r":
            line_is_blank = False

    return code, body.decode("utf-8", errors="replace")


class RestClient:
    """Sends requests to one host; every request opens and closes a connection.

    Headers set with :meth:`set_header` apply to the next request only.
    Each request returns ``(status_code, body)``.
    """

    def __init__(self, host, port=DEFAULT_PORT):
        self.host = host
        self.port = port
        self.content_type = DEFAULT_CONTENT_TYPE
        self.headers: list[str] = []
        self._client_factory = TcpClient

    def set_header(self, header) -> None:
        """Add a full header line, e.g. ``"Accept: application/json"``."""
        if len(self.headers) >= MAX_HEADERS:
            raise ValueError(f"at most {MAX_HEADERS} headers can be set")
        self.headers.append(header)

    def set_content_type(self, content_type) -> None:
        """Set the Content-Type sent with request bodies."""
        self.content_type = content_type

    def request(self, method, path, body=None) -> tuple[int, str]:
        """Send one request and wait until the server closes the connection.

        Raises OSError when the connection cannot be made.
        """
        client = self._client_factory()
        client.connect(self.host, self.port)
        try:
            client.write(
                build_request(method, path, self.host, self.headers, body, self.content_type)
            )
            received = bytearray()
            while client.connected():
                chunk = client.read()
                if chunk:
                    received += chunk
                else:
                    time.sleep(_POLL_INTERVAL)
        finally:
            self.headers = []
            client.stop()
        return parse_response(received)

    def get(self, path) -> tuple[int, str]:
        """Send a GET request."""
        return self.request("GET", path)

    def post(self, path, body) -> tuple[int, str]:
        """Send a POST request with ``body``."""
        return self.request("POST", path, body)

    def put(self, path, body) -> tuple[int, str]:
        """Send a PUT request with ``body``."""
        return self.request("PUT", path, body)

    def delete(self, path, body=None) -> tuple[int, str]:
        """Send a DELETE request, with ``body`` when one is given."""
        return self.request("DELETE", path, body)