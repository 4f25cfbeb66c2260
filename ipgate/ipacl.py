"""Allowlist checks for exact addresses and CIDR subnets.

An allowlist is a comma separated string such as
``"10.0.0.0/8, 192.168.1.7, 2001:db8::/32"``. Entries without a slash are
compared to the client address textually, entries with a slash are treated
as subnets and compared bitwise on the raw address bytes. Malformed entries
never match and never raise; they are reported to a diagnostic sink instead.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from .resolve import Resolver, resolve_numeric

log = logging.getLogger(__name__)

DiagnosticSink = Callable[[str, str], None]


@dataclass(frozen=True, slots=True)
class ExactAddress:
    address: str


@dataclass(frozen=True, slots=True)
class Subnet:
    address: str
    prefix_length: int


@dataclass(frozen=True, slots=True)
class MalformedEntry:
    text: str
    reason: str


AllowlistEntry = Union[ExactAddress, Subnet, MalformedEntry]


def parse_entry(token: str) -> AllowlistEntry:
    """Classify a single trimmed allowlist token."""
    if "/" not in token:
        return ExactAddress(token)

    parts = token.split("/")
    if len(parts) != 2:
        return MalformedEntry(token, "expected exactly one '/'")
    address, prefix = parts
    if not address:
        return MalformedEntry(token, "missing subnet address")
    if not (prefix.isascii() and prefix.isdigit()):
        return MalformedEntry(token, f"prefix length {prefix!r} is not a non-negative integer")
    return Subnet(address, int(prefix))


def parse_allowlist(allowed_ips: str) -> List[AllowlistEntry]:
    entries: List[AllowlistEntry] = []
    for raw in allowed_ips.split(","):
        token = raw.strip()
        if token:
            entries.append(parse_entry(token))
    return entries


def _prefix_matches(client: bytes, base: bytes, prefix_length: int) -> bool:
    full_bytes, remaining_bits = divmod(prefix_length, 8)
    if client[:full_bytes] != base[:full_bytes]:
        return False
    if remaining_bits > 0:
        mask = (0xFF00 >> remaining_bits) & 0xFF
        return (client[full_bytes] & mask) == (base[full_bytes] & mask)
    return True


def _log_diagnostic(entry: str, reason: str) -> None:
    log.info("CIDR format is invalid: %s (%s)", entry, reason)


class AddressMatcher:
    """Decides whether a client address is covered by an allowlist.

    The matcher keeps no state between calls. ``resolver`` turns textual
    addresses into packed bytes and ``diagnostics`` receives malformed
    entries together with a short reason."""

    def __init__(
        self,
        resolver: Optional[Resolver] = None,
        diagnostics: Optional[DiagnosticSink] = None,
    ):
        self._resolver = resolver or resolve_numeric
        self._diagnostics = diagnostics or _log_diagnostic

    def is_allowed(self, client_ip: str, allowed_ips: str) -> bool:
        for entry in parse_allowlist(allowed_ips):
            if self.matches(client_ip, entry):
                return True
        return False

    def is_in_subnet(self, client_ip: str, subnet_spec: str) -> bool:
        entry = parse_entry(subnet_spec.strip())
        if isinstance(entry, ExactAddress):
            self._report(subnet_spec, "missing '/'")
            return False
        return self.matches(client_ip, entry)

    def matches(self, client_ip: str, entry: AllowlistEntry) -> bool:
        match entry:
            case ExactAddress(address=address):
                return client_ip == address
            case Subnet():
                return self._subnet_matches(client_ip, entry)
            case MalformedEntry(text=text, reason=reason):
                self._report(text, reason)
                return False
        return False

    def _subnet_matches(self, client_ip: str, subnet: Subnet) -> bool:
        cidr = f"{subnet.address}/{subnet.prefix_length}"
        try:
            base = self._resolver(subnet.address)
        except ValueError as exc:
            self._report(cidr, str(exc))
            return False

        width = len(base) * 8
        if subnet.prefix_length > width:
            self._report(cidr, f"prefix length exceeds {width} bits")
            return False

        try:
            client = self._resolver(client_ip)
        except ValueError as exc:
            self._report(cidr, f"client address {client_ip!r}: {exc}")
            return False

        if len(client) != len(base):
            return False
        return _prefix_matches(client, base, subnet.prefix_length)

    def _report(self, entry: str, reason: str) -> None:
        try:
            self._diagnostics(entry, reason)
        except Exception:
            log.debug("Diagnostic sink failed for %s", entry, exc_info=True)


_default_matcher = AddressMatcher()


def is_allowed(client_ip: str, allowed_ips: str) -> bool:
    """Return True if ``client_ip`` matches any entry of ``allowed_ips``."""
    return _default_matcher.is_allowed(client_ip, allowed_ips)


def is_in_subnet(client_ip: str, subnet_spec: str) -> bool:
    """Return True if ``client_ip`` lies within the ``address/prefix`` subnet."""
    return _default_matcher.is_in_subnet(client_ip, subnet_spec)


__all__ = [
    "AddressMatcher",
    "AllowlistEntry",
    "DiagnosticSink",
    "ExactAddress",
    "MalformedEntry",
    "Subnet",
    "is_allowed",
    "is_in_subnet",
    "parse_allowlist",
    "parse_entry",
]
