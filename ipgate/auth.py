"""Client address authentication."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .config import AccessConfig
from .ipacl import AddressMatcher, DiagnosticSink
from .resolve import resolver_for

log = logging.getLogger(__name__)


@dataclass(slots=True)
class AuthResult:
    client_ip: str


class AuthError(RuntimeError):
    pass


class IpAuthenticator:
    """Grants or denies access based on the configured address allowlist."""

    def __init__(
        self,
        access: AccessConfig,
        matcher: Optional[AddressMatcher] = None,
        diagnostics: Optional[DiagnosticSink] = None,
    ):
        self._diagnostics = diagnostics
        self._fixed_matcher = matcher
        self._access = access
        self._matcher = self._build_matcher(access)

    def _build_matcher(self, access: AccessConfig) -> AddressMatcher:
        if self._fixed_matcher is not None:
            return self._fixed_matcher
        return AddressMatcher(
            resolver=resolver_for(access.resolve_hostnames),
            diagnostics=self._diagnostics,
        )

    @property
    def access(self) -> AccessConfig:
        return self._access

    def refresh(self, access: AccessConfig) -> None:
        self._matcher = self._build_matcher(access)
        self._access = access

    def check(self, client_ip: str, allowed_ips: Optional[str] = None) -> bool:
        if allowed_ips is None:
            allowed_ips = self._access.allowed_ips
        return self._matcher.is_allowed(client_ip, allowed_ips)

    def authenticate(self, client_ip: Optional[str]) -> AuthResult:
        if not client_ip:
            raise AuthError("Client address unavailable")
        if not self.check(client_ip):
            log.warning("Access denied for %s", client_ip)
            raise AuthError(f"Address {client_ip} is not allowed")
        log.debug("Access granted for %s", client_ip)
        return AuthResult(client_ip=client_ip)


__all__ = ["AuthError", "AuthResult", "IpAuthenticator"]
