# lightnet

A small networking toolkit for Python 3.10 and later. It needs nothing
beyond the standard library.

## Modules

- `lightnet.dhcp_packet` encodes client DHCP messages and decodes server
  replies: `build_message`, `parse_reply` (returns a `DhcpReply`, or None
  for a reply meant for someone else) and `hostname_for_mac`, which
  appends the last three MAC bytes in hex to a prefix. `MessageType` and
  `Option` hold the message types and option codes.
- `lightnet.dhcp` runs the lease state machine. `DhcpClient.begin(mac,
  timeout, response_timeout)` acquires a lease and returns True on
  success; `DhcpClient.check_lease()` counts the renew and rebind timers
  down and renews or rebinds when they reach zero, returning a
  `LeaseCheck`. Times are in seconds.
- `lightnet.udp` offers `UdpSocket`, a non-blocking UDP endpoint. Datagrams
  are sent with `begin_packet` / `write` / `end_packet` and received with
  `parse_packet` followed by `read`, `peek` and `available`.
- `lightnet.dns` resolves type A records. `DnsClient.get_host_by_name`
  returns an `ipaddress.IPv4Address` or raises `DnsError`, whose `code`
  tells what went wrong. The wire helpers `build_query`, `parse_response`
  and `inet_aton` are available on their own.
- `lightnet.tcp` offers `TcpClient`, a TCP connection whose `available`,
  `read` and `peek` only see data that has already arrived.
- `lightnet.restclient` sends simple HTTP/1.1 requests with `RestClient`,
  opening a new connection for every request. `build_request` and
  `parse_response` are available on their own.

## Installation

```
pip install .
```

## Examples

Resolve a host name (the timeout is in seconds):

```python
from lightnet.dns import DnsClient

client = DnsClient("192.0.2.53")
address = client.get_host_by_name("example.com", 5.0)
```

Talk to a REST service. Each call returns `(status_code, body)`; headers
set with `set_header` apply to the next request only:

```python
from lightnet.restclient import RestClient

client = RestClient("example.com", 80)
client.set_header("Accept: application/json")
status, body = client.get("/lights")
status, body = client.post("/lights/1", "state=on")
status, body = client.delete("/lights/1")
```

Build a DHCP DISCOVER message and decode a reply:

```python
from lightnet.dhcp_packet import MessageType, build_message, parse_reply

mac = bytes.fromhex("020000000001")
packet = build_message(MessageType.DISCOVER, 1234, 0, mac, "lightnet")
# reply = parse_reply(received_bytes, mac, 1234, 1234)
```

## Driving the DHCP client

`DhcpClient` takes a transport object rather than opening sockets itself.
The transport must provide `open(port)` (raising `OSError` when no socket
can be had), `close()`, `send(data, address, port)` and
`receive(timeout)`, which returns `(data, (host, port))` or None when
nothing arrived in time. `UdpSocket` does not have this interface, so the
caller supplies a suitable transport.

## What the package does not do

- It has no command-line tool.
- `DhcpClient` only records the lease (`local_ip`, `subnet_mask`,
  `gateway_ip`, `dns_server_ip`, `dhcp_server_ip`); it does not configure
  any network interface of the machine.
- `DnsClient` asks a single server for type A records only and does no
  caching.
- `TcpClient` and `RestClient` look host names up through the system
  resolver, not through `DnsClient`, and speak plain TCP only (no TLS).

## Running the tests

```
pip install .[test]
pytest
```