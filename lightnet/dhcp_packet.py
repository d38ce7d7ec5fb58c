"""DHCP client message encoding and server reply decoding."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from ipaddress import IPv4Address

DHCP_SERVER_PORT = 67
DHCP_CLIENT_PORT = 68

BOOTREQUEST = 1
BOOTREPLY = 2

HTYPE_10MB = 1
HTYPE_100MB = 2
HLEN_ETHERNET = 6
HOPS = 0

FLAGS_BROADCAST = 0x8000
MAGIC_COOKIE = 0x63825363
DEFAULT_LEASE = 900
DEFAULT_HOST_NAME = "WIZnet"

# op .. chaddr[6] of the fixed BOOTP header
_FIXED_SIZE = 34
# the options field starts after the 236-byte header and the 4-byte cookie
_OPTIONS_OFFSET = 240
_CHADDR_OFFSET = 28


class MessageType(enum.IntEnum):
    """DHCP message types carried in option 53."""

    DISCOVER = 1
    OFFER = 2
    REQUEST = 3
    DECLINE = 4
    ACK = 5
    NAK = 6
    RELEASE = 7
    INFORM = 8


class Option(enum.IntEnum):
    """DHCP option codes used by the client."""

    PAD = 0
    SUBNET_MASK = 1
    TIMER_OFFSET = 2
    ROUTERS_ON_SUBNET = 3
    DNS = 6
    HOST_NAME = 12
    DOMAIN_NAME = 15
    REQUESTED_IP_ADDR = 50
    IP_ADDR_LEASE_TIME = 51
    MESSAGE_TYPE = 53
    SERVER_IDENTIFIER = 54
    PARAM_REQUEST = 55
    T1_VALUE = 58
    T2_VALUE = 59
    CLIENT_IDENTIFIER = 61
    END = 255


PARAMETER_REQUEST_LIST = (
    Option.SUBNET_MASK,
    Option.ROUTERS_ON_SUBNET,
    Option.DNS,
    Option.DOMAIN_NAME,
    Option.T1_VALUE,
    Option.T2_VALUE,
)


@dataclass(frozen=True)
class DhcpReply:
    """What a server reply addressed to this client carried.

    ``message_type`` is 0 when the reply had no message-type option.
    Optional fields are None when the matching option was absent.
    """

    transaction_id: int
    message_type: int
    local_ip: IPv4Address
    subnet_mask: IPv4Address | None = None
    gateway_ip: IPv4Address | None = None
    dns_server_ip: IPv4Address | None = None
    server_ip: IPv4Address | None = None
    lease_time: int | None = None
    t1: int | None = None
    t2: int | None = None


def _mac_bytes(mac) -> bytes:
    data = bytes(mac)
    if len(data) != 6:
        raise ValueError(f"MAC address must be 6 bytes, got {len(data)}")
    return data


def _ip_bytes(value) -> bytes:
    if value is None:
        return bytes(4)
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 4:
            raise ValueError(f"IPv4 address must be 4 bytes, got {len(value)}")
        return bytes(value)
    return IPv4Address(value).packed


def hostname_for_mac(prefix: str, mac) -> str:
    """Return ``prefix`` followed by the last three MAC bytes in upper-case hex."""
    tail = _mac_bytes(mac)[3:]
    return prefix + "".join(f"{byte:02X}" for byte in tail)


def build_message(
    message_type,
    transaction_id: int,
    seconds_elapsed: int,
    mac,
    host_name: str,
    local_ip=None,
    server_ip=None,
) -> bytes:
    """Encode a client DHCP message ready to be broadcast to the server port.

    ``local_ip`` and ``server_ip`` are only sent with a REQUEST.
    """
    mac_bytes = _mac_bytes(mac)
    name = host_name.encode("ascii")
    if not 0 < len(name) <= 255:
        raise ValueError("host name must be 1 to 255 characters long")
    message_type = MessageType(message_type)

    header = bytes([BOOTREQUEST, HTYPE_10MB, HLEN_ETHERNET, HOPS])
    header += (transaction_id & 0xFFFFFFFF).to_bytes(4, "big")
    header += (seconds_elapsed & 0xFFFF).to_bytes(2, "big")
    header += FLAGS_BROADCAST.to_bytes(2, "big")
    header += bytes(16)  # ciaddr, yiaddr, siaddr, giaddr

    chaddr = mac_bytes.ljust(16, b"\0")
    sname_and_file = bytes(192)

    options = bytearray(MAGIC_COOKIE.to_bytes(4, "big"))
    options += bytes([Option.MESSAGE_TYPE, 1, message_type])
    options += bytes([Option.CLIENT_IDENTIFIER, 7, 0x01]) + mac_bytes
    options += bytes([Option.HOST_NAME, len(name)]) + name
    if message_type == MessageType.REQUEST:
        options += bytes([Option.REQUESTED_IP_ADDR, 4]) + _ip_bytes(local_ip)
        options += bytes([Option.SERVER_IDENTIFIER, 4]) + _ip_bytes(server_ip)
    options += bytes([Option.PARAM_REQUEST, len(PARAMETER_REQUEST_LIST)])
    options += bytes(PARAMETER_REQUEST_LIST)
    options.append(Option.END)

    return header + chaddr + sname_and_file + bytes(options)


def _take(value: bytes, size: int, code: int) -> bytes:
    if len(value) < size:
        raise ValueError(f"option {code} is shorter than {size} bytes")
    return value[:size]


def parse_reply(packet, mac, min_xid: int, max_xid: int) -> DhcpReply | None:
    """Decode a server reply.

    Returns None when the packet is not a BOOTREPLY, is for another
    hardware address, or carries a transaction id outside
    ``min_xid..max_xid``. Raises ValueError on a truncated packet.
    """
    data = bytes(packet)
    mac_bytes = _mac_bytes(mac)
    if len(data) < _FIXED_SIZE:
        raise ValueError(f"DHCP packet too short: {len(data)} bytes")
    if data[0] != BOOTREPLY:
        return None

    transaction_id = int.from_bytes(data[4:8], "big")
    if data[_CHADDR_OFFSET:_CHADDR_OFFSET + 6] != mac_bytes:
        return None
    if not min_xid <= transaction_id <= max_xid:
        return None

    fields: dict = {
        "transaction_id": transaction_id,
        "message_type": 0,
        "local_ip": IPv4Address(data[16:20]),
    }

    pos = _OPTIONS_OFFSET
    while pos < len(data):
        code = data[pos]
        pos += 1
        if code in (Option.PAD, Option.END):
            continue
        if pos >= len(data):
            raise ValueError(f"option {code} has no length byte")
        length = data[pos]
        pos += 1
        value = data[pos:pos + length]
        if len(value) < length:
            raise ValueError(f"option {code} runs past the end of the packet")
        pos += length

        if code == Option.MESSAGE_TYPE:
            raw = _take(value, 1, code)[0]
            try:
                fields["message_type"] = MessageType(raw)
            except ValueError:
                fields["message_type"] = raw
        elif code == Option.SUBNET_MASK:
            fields["subnet_mask"] = IPv4Address(_take(value, 4, code))
        elif code == Option.ROUTERS_ON_SUBNET:
            fields["gateway_ip"] = IPv4Address(_take(value, 4, code))
        elif code == Option.DNS:
            fields["dns_server_ip"] = IPv4Address(_take(value, 4, code))
        elif code == Option.SERVER_IDENTIFIER:
            fields["server_ip"] = IPv4Address(_take(value, 4, code))
        elif code == Option.T1_VALUE:
            fields["t1"] = int.from_bytes(_take(value, 4, code), "big")
        elif code == Option.T2_VALUE:
            fields["t2"] = int.from_bytes(_take(value, 4, code), "big")
        elif code == Option.IP_ADDR_LEASE_TIME:
            fields["lease_time"] = int.from_bytes(_take(value, 4, code), "big")

    return DhcpReply(**fields)