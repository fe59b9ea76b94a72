"""Private/reserved address classification for IPv4 and IPv6."""

from __future__ import annotations

import ipaddress
from ipaddress import IPv4Address, IPv4Network, IPv6Address, IPv6Network

BLOCKED_IPV4_NETWORKS: tuple[IPv4Network, ...] = tuple(
    IPv4Network(cidr)
    for cidr in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "169.254.0.0/16",  # link-local, includes cloud metadata endpoints
        "0.0.0.0/8",
        "224.0.0.0/4",  # multicast
        "240.0.0.0/4",  # reserved, includes broadcast
    )
)

BLOCKED_IPV6_NETWORKS: tuple[IPv6Network, ...] = tuple(
    IPv6Network(cidr)
    for cidr in (
        "::1/128",
        "::/128",
        "fc00::/7",
        "fe80::/10",
        "ff00::/8",
    )
)

IPV4_MAPPED_NETWORK = IPv6Network("::ffff:0:0/96")


def parse_address(address: str) -> IPv4Address | IPv6Address | None:
    """Parse an address literal, tolerating brackets and a zone id. Returns None if invalid."""
    text = address.strip().strip("[]")
    text = text.split("%", 1)[0]
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        return None


def is_private(address: str | IPv4Address | IPv6Address) -> bool:
    """Return True if ``address`` is private, reserved, loopback, link-local or multicast.

    IPv4-mapped IPv6 addresses (``::ffff:a.b.c.d``) are unwrapped and checked
    against the IPv4 table. Strings that are not valid addresses count as
    private so callers fail closed.
    """
    ip = parse_address(address) if isinstance(address, str) else address
    if ip is None:
        return True
    if isinstance(ip, IPv4Address):
        return any(ip in net for net in BLOCKED_IPV4_NETWORKS)
    if ip in IPV4_MAPPED_NETWORK:
        mapped = ip.ipv4_mapped
        return mapped is None or is_private(mapped)
    return any(ip in net for net in BLOCKED_IPV6_NETWORKS)
