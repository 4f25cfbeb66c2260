"""Runtime wiring for the access gate."""
from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

from .auth import AuthError, AuthResult, IpAuthenticator
from .config import ConfigError, ConfigManager, GateConfig
from .ipacl import AddressMatcher, parse_allowlist
from .log import logging_sink

log = logging.getLogger(__name__)

CONFIG_FILENAME = "gate.json"


class GateRuntime:
    """Holds the active configuration and answers access decisions.

    Decisions may resolve hostnames, so ``authenticate`` and ``check`` run the
    matcher in the default executor instead of on the event loop."""

    def __init__(self, config_dir: Path):
        self._config_manager = ConfigManager(config_dir / CONFIG_FILENAME)
        self._config: Optional[GateConfig] = None
        self._authenticator: Optional[IpAuthenticator] = None
        self._admin_matcher: Optional[AddressMatcher] = None
        self._lock = asyncio.Lock()

    @property
    def config(self) -> GateConfig:
        if self._config is None:
            raise ConfigError("Configuration not loaded")
        return self._config

    @property
    def ready(self) -> bool:
        return self._authenticator is not None

    async def initialize(self) -> None:
        async with self._lock:
            self._apply_config(self._config_manager.load())

    async def reload(self) -> None:
        async with self._lock:
            config = self._config_manager.load()
            log.info("Configuration reloaded from disk")
            self._apply_config(config)

    async def shutdown(self) -> None:
        async with self._lock:
            self._authenticator = None
            self._admin_matcher = None
            self._config = None

    def _apply_config(self, config: GateConfig) -> None:
        sink = logging_sink(config.logging.diagnostics_level)
        self._authenticator = IpAuthenticator(config.access, diagnostics=sink)
        # admin peers are always matched numerically
        self._admin_matcher = AddressMatcher(diagnostics=sink)
        self._config = config
        log.info(
            "Access gate initialized with %d allowlist entries (hostname resolution %s)",
            len(parse_allowlist(config.access.allowed_ips)),
            "on" if config.access.resolve_hostnames else "off",
        )

    def authenticator(self) -> IpAuthenticator:
        if self._authenticator is None:
            raise AuthError("Authenticator not ready")
        return self._authenticator

    async def authenticate(self, client_ip: Optional[str]) -> AuthResult:
        authenticator = self.authenticator()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, authenticator.authenticate, client_ip)

    async def check(self, client_ip: str, allowed_ips: Optional[str] = None) -> bool:
        authenticator = self.authenticator()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, authenticator.check, client_ip, allowed_ips)

    def admin_allowed(self, host: str) -> bool:
        if self._admin_matcher is None or self._config is None:
            return False
        return self._admin_matcher.is_allowed(host, self._config.admin.networks)

    def install_signal_handlers(self) -> None:
        """Map SIGTERM to shutdown and, if enabled, SIGHUP to reload.

        Handlers can only be installed from the main thread; elsewhere (for
        example under a test client) the gate runs without them."""
        loop = asyncio.get_running_loop()
        handlers = {signal.SIGTERM: self.shutdown}
        if self.config.reload.enable_sighup:
            handlers[signal.SIGHUP] = self.reload

        for signum, action in handlers.items():
            def _handler(signum=signum, action=action) -> None:
                log.info("%s received", signal.Signals(signum).name)
                loop.create_task(action())

            try:
                loop.add_signal_handler(signum, _handler)
            except (NotImplementedError, RuntimeError, ValueError):
                log.warning("Cannot install handler for %s", signal.Signals(signum).name)
                return


__all__ = ["CONFIG_FILENAME", "GateRuntime"]
