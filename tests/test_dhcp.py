from ipaddress import IPv4Address

import pytest

from lightnet.dhcp import DhcpClient, DhcpState, LeaseCheck
from lightnet.dhcp_packet import DEFAULT_LEASE, MessageType, Option, hostname_for_mac

MAC = bytes([0x02, 0x00, 0x00, 0x00, 0x00, 0x01])
SERVER_IP = "192.168.1.1"
OFFERED_IP = "192.168.1.50"
SUBNET = "255.255.255.0"
DNS_IP = "192.168.1.2"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _opt(code, value):
    return bytes([code, len(value)]) + bytes(value)


def _ip(text):
    return IPv4Address(text).packed


def make_reply(xid, mac, yiaddr, options):
    packet = bytes([2, 1, 6, 0]) + (xid & 0xFFFFFFFF).to_bytes(4, "big")
    packet += bytes(4) + bytes(4) + _ip(yiaddr) + bytes(8)
    packet += mac + bytes(10) + bytes(192)
    packet += (0x63825363).to_bytes(4, "big") + options + b"\xff"
    return packet


class FakeServer:
    def __init__(self, ack_options=b"", naks=0, port=67, xid_offset=0):
        self.ack_options = ack_options
        self.naks = naks
        self.port = port
        self.xid_offset = xid_offset
        self.silent = False

    def __call__(self, packet):
        if self.silent:
            return []
        kind = packet[242]
        xid = int.from_bytes(packet[4:8], "big") + self.xid_offset
        server = _opt(Option.SERVER_IDENTIFIER, _ip(SERVER_IP))
        if kind == MessageType.DISCOVER:
            options = _opt(Option.MESSAGE_TYPE, [MessageType.OFFER]) + server
        elif kind == MessageType.REQUEST and self.naks:
            self.naks -= 1
            options = _opt(Option.MESSAGE_TYPE, [MessageType.NAK]) + server
        elif kind == MessageType.REQUEST:
            options = (
                _opt(Option.MESSAGE_TYPE, [MessageType.ACK])
                + server
                + _opt(Option.SUBNET_MASK, _ip(SUBNET))
                + _opt(Option.ROUTERS_ON_SUBNET, _ip(SERVER_IP))
                + _opt(Option.DNS, _ip(DNS_IP))
                + self.ack_options
            )
        else:
            return []
        return [(make_reply(xid, MAC, OFFERED_IP, options), (SERVER_IP, self.port))]


class FakeTransport:
    def __init__(self, clock, responder):
        self.clock = clock
        self.responder = responder
        self.sent = []
        self.opened = []
        self.closed = 0
        self.queue = []
        self.fail_open = False

    def open(self, port):
        if self.fail_open:
            raise OSError("no socket")
        self.opened.append(port)

    def close(self):
        self.closed += 1

    def send(self, data, address, port):
        self.sent.append((data, address, port))
        self.queue.extend(self.responder(data))

    def receive(self, timeout):
        if self.queue:
            return self.queue.pop(0)
        self.clock.advance(timeout)
        return None


def setup(server=None):
    clock = FakeClock()
    transport = FakeTransport(clock, server or FakeServer())
    return DhcpClient(transport, clock), transport, clock


def kinds(transport):
    return [data[242] for data, _, _ in transport.sent]


def test_begin_obtains_lease():
    client, transport, _ = setup()
    assert client.begin(MAC) is True
    assert client.state == DhcpState.LEASED
    assert client.local_ip == IPv4Address(OFFERED_IP)
    assert client.subnet_mask == IPv4Address(SUBNET)
    assert client.gateway_ip == IPv4Address(SERVER_IP)
    assert client.dns_server_ip == IPv4Address(DNS_IP)
    assert client.dhcp_server_ip == IPv4Address(SERVER_IP)
    assert kinds(transport) == [MessageType.DISCOVER, MessageType.REQUEST]
    assert transport.opened == [68]
    assert all(addr == "255.255.255.255" and port == 67 for _, addr, port in transport.sent)


def test_default_lease_and_timers():
    client, _, _ = setup()
    assert client.begin(MAC)
    assert client.lease_time == DEFAULT_LEASE
    assert client.t1 * 2 == client.lease_time
    assert client.t2 == client.lease_time - client.lease_time // 8
    assert client.renew_in == client.t1
    assert client.rebind_in == client.t2


def test_server_timers_are_kept():
    options = (
        _opt(Option.IP_ADDR_LEASE_TIME, (3600).to_bytes(4, "big"))
        + _opt(Option.T1_VALUE, (1000).to_bytes(4, "big"))
        + _opt(Option.T2_VALUE, (2000).to_bytes(4, "big"))
    )
    client, _, _ = setup(FakeServer(ack_options=options))
    assert client.begin(MAC)
    assert client.lease_time == 3600
    assert client.t1 == 1000
    assert client.t2 == 2000
    assert client.renew_in == 1000
    assert client.rebind_in == 2000


def test_request_carries_offer_and_host_name():
    client, transport, _ = setup()
    client.begin(MAC)
    request = transport.sent[1][0]
    assert bytes([Option.REQUESTED_IP_ADDR, 4]) + _ip(OFFERED_IP) in request
    assert bytes([Option.SERVER_IDENTIFIER, 4]) + _ip(SERVER_IP) in request
    assert hostname_for_mac("WIZnet", MAC).encode() in transport.sent[0][0]


def test_request_uses_offer_transaction_id():
    client, transport, _ = setup()
    client.begin(MAC)
    discover, request = (data for data, _, _ in transport.sent)
    assert discover[4:8] == request[4:8]


def test_nak_restarts_discovery():
    client, transport, _ = setup(FakeServer(naks=1))
    assert client.begin(MAC)
    assert kinds(transport) == [
        MessageType.DISCOVER,
        MessageType.REQUEST,
        MessageType.DISCOVER,
        MessageType.REQUEST,
    ]


def test_silent_server_times_out():
    server = FakeServer()
    server.silent = True
    client, transport, clock = setup(server)
    assert client.begin(MAC, timeout=20.0, response_timeout=4.0) is False
    assert client.state != DhcpState.LEASED
    assert clock.now > 20.0
    assert set(kinds(transport)) == {MessageType.DISCOVER}


def test_open_failure():
    client, transport, _ = setup()
    transport.fail_open = True
    assert client.begin(MAC) is False
    assert transport.sent == []


@pytest.mark.parametrize("server", [FakeServer(port=1067), FakeServer(xid_offset=5000)])
def test_foreign_replies_are_ignored(server):
    client, transport, _ = setup(server)
    assert client.begin(MAC, timeout=10.0) is False
    assert MessageType.REQUEST not in kinds(transport)
    assert client.local_ip == IPv4Address(0)


def test_check_lease_before_begin():
    client, _, _ = setup()
    with pytest.raises(RuntimeError):
        client.check_lease()


def test_check_lease_counts_down():
    options = _opt(Option.IP_ADDR_LEASE_TIME, (100).to_bytes(4, "big"))
    client, _, clock = setup(FakeServer(ack_options=options))
    client.begin(MAC)
    renew, rebind = client.renew_in, client.rebind_in
    clock.advance(0.5)
    assert client.check_lease() == LeaseCheck.NONE
    assert client.renew_in == renew
    clock.advance(2.5)
    assert client.check_lease() == LeaseCheck.NONE
    assert client.renew_in == renew - 3
    assert client.rebind_in == rebind - 3


def test_renew_ok():
    options = _opt(Option.IP_ADDR_LEASE_TIME, (10).to_bytes(4, "big"))
    client, transport, clock = setup(FakeServer(ack_options=options))
    client.begin(MAC)
    sent_before = len(transport.sent)
    clock.advance(6)
    assert client.check_lease() == LeaseCheck.RENEW_OK
    assert client.state == DhcpState.LEASED
    assert kinds(transport)[sent_before] == MessageType.REQUEST
    assert client.renew_in == client.t1


def test_rebind_ok():
    options = _opt(Option.T1_VALUE, (100).to_bytes(4, "big")) + _opt(
        Option.T2_VALUE, (5).to_bytes(4, "big")
    )
    client, transport, clock = setup(FakeServer(ack_options=options))
    client.begin(MAC)
    sent_before = len(transport.sent)
    clock.advance(6)
    assert client.check_lease() == LeaseCheck.REBIND_OK
    assert client.state == DhcpState.LEASED
    assert kinds(transport)[sent_before] == MessageType.DISCOVER
    assert client.local_ip == IPv4Address(OFFERED_IP)