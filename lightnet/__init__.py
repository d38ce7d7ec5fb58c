"""DHCP, DNS, UDP, TCP and minimal HTTP client helpers."""

__version__ = "0.1.0"

__all__ = ["dhcp_packet", "dhcp", "udp", "dns", "tcp", "restclient"]