"""Configuration loading and validation for ipgate."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from threading import RLock
from typing import Any, List, Mapping, MutableMapping, Optional

log = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = "/var/ipgate/ipgate.sock"
DEFAULT_PORT = 8080


class ConfigError(RuntimeError):
    """Configuration error exception

    This exception is raised whenever the configuration
    file is invalid
    """

@dataclass(slots=True)
class ListenConfig:
    """Listener configuration for the public endpoint.

    When neither ``host_v4`` nor ``host_v6`` are provided the service falls back to
    listening on a Unix domain socket below ``/var/ipgate``."""

    host_v4: Optional[str] = None
    host_v6: Optional[str] = None
    port: Optional[int] = None
    unix_socket: Optional[str] = None


@dataclass(slots=True)
class AdminConfig:
    """Administration interface configuration

    ``bind`` is used by the command line client to locate the admin endpoints.
    ``networks`` is an allowlist (same syntax as ``access.allowed_ips``) of peers
    that may call the admin endpoints in addition to loopback."""

    bind: List[str] = field(default_factory=lambda: ["127.0.0.1:8081", "[::1]:8081"])
    networks: str = ""


@dataclass(slots=True)
class LoggingConfig:
    """Logging configuration

    Specifies the log level, an optional log file, if we should run an access
    log and at which level malformed allowlist entries are reported"""

    level: str = "INFO"
    access_log: bool = True
    file: Optional[str] = None
    diagnostics_level: str = "INFO"


@dataclass(slots=True)
class ReloadConfig:
    """SIGHUP handler

    If enabled the SIGHUP handler allows to trigger reloading of the
    configuration file"""

    enable_sighup: bool = True


@dataclass(slots=True)
class AccessConfig:
    """Access gate settings.

    ``allowed_ips`` is handed to the matcher verbatim. ``client_ip_header``
    names a header set by a trusted reverse proxy (for example
    ``X-Forwarded-For``); when unset the socket peer address is used."""

    allowed_ips: str = ""
    resolve_hostnames: bool = False
    client_ip_header: Optional[str] = None
    exempt_paths: List[str] = field(default_factory=lambda: ["/healthz", "/admin"])


@dataclass(slots=True)
class GateConfig:
    listen: ListenConfig
    admin: AdminConfig
    logging: LoggingConfig
    reload: ReloadConfig
    access: AccessConfig


def _expect(obj: MutableMapping[str, Any], key: str, ctx: str) -> Any:
    if key not in obj:
        raise ConfigError(f"Missing field '{key}' in {ctx}")
    return obj[key]


def _load_list(value: Any, ctx: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"Expected list for {ctx}")
    return value


def _load_mapping(value: Any, ctx: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected mapping for {ctx}")
    return value


def _load_bool(value: Any, default: bool, ctx: str) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(f"Expected true or false for {ctx}")
    return value


def _load_allowlist(value: Any, ctx: str) -> str:
    """Accept either a comma separated string or a list of entries."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        if not all(isinstance(item, str) for item in value):
            raise ConfigError(f"Expected strings in {ctx}")
        return ", ".join(value)
    raise ConfigError(f"Expected string or list for {ctx}")


def _load_level(value: Any, ctx: str) -> str:
    level = str(value).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"Unknown log level '{value}' for {ctx}")
    return level


def _load_listen(raw: Mapping[str, Any]) -> ListenConfig:
    host_v4_value = raw.get("host_v4")
    host_v6_value = raw.get("host_v6")
    unix_socket_value = raw.get("unix_socket")
    port_value = raw.get("port")

    host_v4 = str(host_v4_value) if host_v4_value is not None else None
    host_v6 = str(host_v6_value) if host_v6_value is not None else None

    port: Optional[int]
    if port_value is not None:
        try:
            port = int(port_value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid listen.port: {port_value!r}") from exc
    elif host_v4 or host_v6:
        port = DEFAULT_PORT
    else:
        port = None

    unix_socket = str(unix_socket_value) if unix_socket_value is not None else None
    if unix_socket is None and not host_v4 and not host_v6:
        unix_socket = DEFAULT_SOCKET_PATH

    return ListenConfig(host_v4=host_v4, host_v6=host_v6, port=port, unix_socket=unix_socket)


def _load_access(raw: Mapping[str, Any]) -> AccessConfig:
    header_value = raw.get("client_ip_header")
    exempt_raw = raw.get("exempt_paths")
    if exempt_raw is None:
        exempt_paths = AccessConfig().exempt_paths
    else:
        exempt_paths = [str(item) for item in _load_list(exempt_raw, "access.exempt_paths")]

    return AccessConfig(
        allowed_ips=_load_allowlist(raw.get("allowed_ips"), "access.allowed_ips"),
        resolve_hostnames=_load_bool(raw.get("resolve_hostnames"), False, "access.resolve_hostnames"),
        client_ip_header=str(header_value) if header_value else None,
        exempt_paths=exempt_paths,
    )


def load_gate_config(path: Path) -> GateConfig:
    data = _load_json(path)
    if not isinstance(data, Mapping):
        raise ConfigError("gate.json must contain an object")

    listen_raw = _load_mapping(data.get("listen"), "listen")
    admin_raw = _load_mapping(data.get("admin"), "admin")
    logging_raw = _load_mapping(data.get("logging"), "logging")
    reload_raw = _load_mapping(data.get("reload"), "reload")
    access_raw = _load_mapping(_expect(dict(data), "access", "gate"), "access")

    admin_bind = admin_raw.get("bind")
    admin = AdminConfig(
        bind=(
            [str(item) for item in _load_list(admin_bind, "admin.bind")]
            if admin_bind is not None
            else AdminConfig().bind
        ),
        networks=_load_allowlist(admin_raw.get("networks"), "admin.networks"),
    )

    logging_cfg = LoggingConfig(
        level=_load_level(logging_raw.get("level", "INFO"), "logging.level"),
        access_log=_load_bool(logging_raw.get("access_log"), True, "logging.access_log"),
        file=(
            str(logging_raw.get("file"))
            if logging_raw.get("file") is not None
            else None
        ),
        diagnostics_level=_load_level(
            logging_raw.get("diagnostics_level", "INFO"), "logging.diagnostics_level"
        ),
    )

    reload_cfg = ReloadConfig(
        enable_sighup=_load_bool(reload_raw.get("enable_sighup"), True, "reload.enable_sighup")
    )

    return GateConfig(
        listen=_load_listen(listen_raw),
        admin=admin,
        logging=logging_cfg,
        reload=reload_cfg,
        access=_load_access(access_raw),
    )


def _load_json(path: Path) -> Any:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file missing: {path}") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc


class ConfigManager:
    """Thread-safe holder for the active configuration."""

    def __init__(self, path: Path):
        self._path = path
        self._lock = RLock()
        self._config: Optional[GateConfig] = None

    def load(self) -> GateConfig:
        """Load the configuration file and swap the active configuration."""
        with self._lock:
            log.debug("Loading configuration from %s", self._path)
            self._config = load_gate_config(self._path)
            return self._config

    def current(self) -> GateConfig:
        with self._lock:
            if self._config is None:
                raise ConfigError("Configuration has not been loaded yet")
            return self._config


__all__ = [
    "AccessConfig",
    "AdminConfig",
    "ConfigError",
    "ConfigManager",
    "GateConfig",
    "ListenConfig",
    "LoggingConfig",
    "ReloadConfig",
    "load_gate_config",
]
