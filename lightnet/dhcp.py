"""DHCP client: lease acquisition, renewal and rebinding."""

from __future__ import annotations

import enum
import random
import time
from ipaddress import IPv4Address

from .dhcp_packet import (
    DEFAULT_HOST_NAME,
    DEFAULT_LEASE,
    DHCP_CLIENT_PORT,
    DHCP_SERVER_PORT,
    DhcpReply,
    MessageType,
    build_message,
    hostname_for_mac,
    parse_reply,
)

BROADCAST_ADDRESS = "255.255.255.255"
_UNSET = IPv4Address(0)


class DhcpState(enum.IntEnum):
    """States of the client's lease state machine."""

    START = 0
    DISCOVER = 1
    REQUEST = 2
    LEASED = 3
    REREQUEST = 4
    RELEASE = 5


class LeaseCheck(enum.IntEnum):
    """Outcome of :meth:`DhcpClient.check_lease`."""

    NONE = 0
    RENEW_FAIL = 1
    RENEW_OK = 2
    REBIND_FAIL = 3
    REBIND_OK = 4


def _as_address(host) -> IPv4Address | None:
    try:
        return IPv4Address(host)
    except ValueError:
        return None


class DhcpClient:
    """Obtains and maintains an IPv4 lease from a DHCP server.

    ``transport`` provides ``open(port)`` (raising OSError when no socket
    can be had), ``close()``, ``send(data, address, port)`` and
    ``receive(timeout)``, which returns ``(data, (host, port))`` or None
    when nothing arrived within ``timeout`` seconds. ``clock`` returns the
    current time in seconds. ``host_name`` is the prefix of the host name
    sent to the server; the last three MAC bytes are appended in hex.
    """

    def __init__(self, transport, clock=time.monotonic, host_name=DEFAULT_HOST_NAME):
        self.transport = transport
        self.clock = clock
        self.host_name = host_name
        self.mac: bytes | None = None
        self.state = DhcpState.START
        self.timeout = 60.0
        self.response_timeout = 4.0
        self.lease_time = 0
        self.t1 = 0
        self.t2 = 0
        self.renew_in = 0
        self.rebind_in = 0
        self.local_ip = _UNSET
        self.subnet_mask = _UNSET
        self.gateway_ip = _UNSET
        self.dhcp_server_ip = _UNSET
        self.dns_server_ip = _UNSET
        self._full_host_name = host_name
        self._xid = 0
        self._initial_xid = 0
        self._last_check = 0.0
        self._random = random.Random()

    def begin(self, mac, timeout=60.0, response_timeout=4.0) -> bool:
        """Acquire a fresh lease for ``mac``; True when one was obtained."""
        self._full_host_name = hostname_for_mac(self.host_name, mac)
        self.mac = bytes(mac)
        self.lease_time = 0
        self.t1 = 0
        self.t2 = 0
        self.timeout = timeout
        self.response_timeout = response_timeout
        self._reset_lease()
        self.state = DhcpState.START
        return self._request_lease()

    def check_lease(self) -> LeaseCheck:
        """Count down the lease timers and renew or rebind when they run out."""
        if self.mac is None:
            raise RuntimeError("begin() has not been called")
        result = LeaseCheck.NONE
        now = self.clock()
        elapsed = now - self._last_check

        if elapsed >= 1:
            self._last_check = now - (elapsed % 1)
            seconds = int(elapsed)
            # renew a little early rather than late when close to zero
            self.renew_in = 0 if self.renew_in < seconds * 2 else self.renew_in - seconds
            self.rebind_in = 0 if self.rebind_in < seconds * 2 else self.rebind_in - seconds

        if self.renew_in == 0 and self.state == DhcpState.LEASED:
            self.state = DhcpState.REREQUEST
            ok = self._request_lease()
            result = LeaseCheck.RENEW_OK if ok else LeaseCheck.RENEW_FAIL

        if self.rebind_in == 0 and self.state in (DhcpState.LEASED, DhcpState.START):
            self.state = DhcpState.START
            self._reset_lease()
            ok = self._request_lease()
            result = LeaseCheck.REBIND_OK if ok else LeaseCheck.REBIND_FAIL

        return result

    def _reset_lease(self) -> None:
        self.local_ip = _UNSET
        self.subnet_mask = _UNSET
        self.gateway_ip = _UNSET
        self.dhcp_server_ip = _UNSET
        self.dns_server_ip = _UNSET

    def _request_lease(self) -> bool:
        self._xid = self._random.randrange(1, 2000)
        self._initial_xid = self._xid

        self.transport.close()
        try:
            self.transport.open(DHCP_CLIENT_PORT)
        except OSError:
            return False

        leased = False
        start = self.clock()
        try:
            while self.state != DhcpState.LEASED:
                if self.state == DhcpState.START:
                    self._xid += 1
                    self._send(MessageType.DISCOVER, start)
                    self.state = DhcpState.DISCOVER
                elif self.state == DhcpState.REREQUEST:
                    self._xid += 1
                    self._send(MessageType.REQUEST, start)
                    self.state = DhcpState.REQUEST
                elif self.state == DhcpState.DISCOVER:
                    reply = self._receive()
                    if reply is None:
                        self.state = DhcpState.START
                    elif reply.message_type == MessageType.OFFER:
                        # continue with the transaction id the offer came with
                        self._xid = reply.transaction_id
                        self._send(MessageType.REQUEST, start)
                        self.state = DhcpState.REQUEST
                elif self.state == DhcpState.REQUEST:
                    reply = self._receive()
                    if reply is None:
                        self.state = DhcpState.START
                    elif reply.message_type == MessageType.ACK:
                        self.state = DhcpState.LEASED
                        leased = True
                        self._settle_timers()
                    elif reply.message_type == MessageType.NAK:
                        self.state = DhcpState.START

                if not leased and self.clock() - start > self.timeout:
                    break
        finally:
            self.transport.close()
            self._xid += 1

        self._last_check = self.clock()
        return leased

    def _settle_timers(self) -> None:
        if self.lease_time == 0:
            self.lease_time = DEFAULT_LEASE
        if self.t1 == 0:
            self.t1 = self.lease_time >> 1
        if self.t2 == 0:
            self.t2 = self.lease_time - (self.lease_time >> 3)
        self.renew_in = self.t1
        self.rebind_in = self.t2

    def _send(self, message_type: MessageType, start: float) -> None:
        packet = build_message(
            message_type,
            self._xid,
            int(self.clock() - start),
            self.mac,
            self._full_host_name,
            self.local_ip,
            self.dhcp_server_ip,
        )
        self.transport.send(packet, BROADCAST_ADDRESS, DHCP_SERVER_PORT)

    def _receive(self) -> DhcpReply | _Ignored | None:
        """Wait for one packet; None on timeout, an ignored marker otherwise."""
        received = self.transport.receive(self.response_timeout)
        if received is None:
            return None
        data, (host, port) = received
        if port != DHCP_SERVER_PORT:
            return _IGNORED
        try:
            reply = parse_reply(data, self.mac, self._initial_xid, self._xid)
        except ValueError:
            return _IGNORED
        if reply is None:
            return _IGNORED
        self._apply(reply, host)
        return reply

    def _apply(self, reply: DhcpReply, remote_host) -> None:
        self.local_ip = reply.local_ip
        if reply.subnet_mask is not None:
            self.subnet_mask = reply.subnet_mask
        if reply.gateway_ip is not None:
            self.gateway_ip = reply.gateway_ip
        if reply.dns_server_ip is not None:
            self.dns_server_ip = reply.dns_server_ip
        if reply.server_ip is not None and (
            self.dhcp_server_ip == _UNSET
            or self.dhcp_server_ip == _as_address(remote_host)
        ):
            self.dhcp_server_ip = reply.server_ip
        if reply.t1 is not None:
            self.t1 = reply.t1
        if reply.t2 is not None:
            self.t2 = reply.t2
        if reply.lease_time is not None:
            self.lease_time = reply.lease_time
            self.renew_in = reply.lease_time


class _Ignored:
    """A packet arrived but was not a reply meant for this client."""

    message_type = 0
    transaction_id = 0


_IGNORED = _Ignored()