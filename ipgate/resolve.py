"""Address resolution for allowlist matching."""
from __future__ import annotations

import ipaddress
import socket
from typing import Callable

Resolver = Callable[[str], bytes]


class UnresolvableAddress(ValueError):
    """Raised when a textual address cannot be turned into raw bytes."""


def resolve_numeric(text: str) -> bytes:
    """Return the packed form of a numeric IPv4 or IPv6 literal.

    No lookups are performed, hostnames are rejected."""
    try:
        return ipaddress.ip_address(text).packed
    except ValueError as exc:
        raise UnresolvableAddress(f"not a numeric address: {text!r}") from exc


def resolve_system(text: str) -> bytes:
    """Resolve literals directly and hostnames through the platform resolver.

    Only the first address returned by ``getaddrinfo`` is used. This call may
    block on DNS."""
    try:
        return resolve_numeric(text)
    except UnresolvableAddress:
        pass
    if not text:
        raise UnresolvableAddress("empty address")
    try:
        infos = socket.getaddrinfo(text, None, proto=socket.IPPROTO_TCP)
    except (OSError, UnicodeError) as exc:
        raise UnresolvableAddress(f"cannot resolve {text!r}: {exc}") from exc
    if not infos:
        raise UnresolvableAddress(f"no addresses for {text!r}")
    # sockaddr is (host, port) for IPv4 and (host, port, flow, scope) for IPv6
    host = infos[0][4][0]
    return resolve_numeric(host.split("%", 1)[0])


def resolver_for(resolve_hostnames: bool) -> Resolver:
    return resolve_system if resolve_hostnames else resolve_numeric


__all__ = ["Resolver", "UnresolvableAddress", "resolve_numeric", "resolve_system", "resolver_for"]
