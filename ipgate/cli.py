"""Console entry point for ipgate.

``ipgate start`` serves the gate in the foreground (run it under systemd or a
similar supervisor), ``ipgate reload``/``ipgate stop`` talk to the admin
endpoints of a running gate and ``ipgate check`` evaluates an address offline.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

import httpx
import uvicorn

from .app import create_app, resolve_config_dir
from .config import DEFAULT_PORT, DEFAULT_SOCKET_PATH, ConfigError, GateConfig, load_gate_config
from .ipacl import AddressMatcher
from .log import logging_sink
from .resolve import resolver_for
from .runtime import CONFIG_FILENAME

DEFAULT_HOST_FALLBACK = "127.0.0.1"
PREFERRED_ADMIN_HOSTS = ("127.0.0.1", "localhost", "::1")


class CommandError(RuntimeError):
    """Reported on stderr; ``exit_code`` becomes the process status."""

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


@dataclass(slots=True)
class ListenTarget:
    host: Optional[str] = None
    port: Optional[int] = None
    uds: Optional[str] = None

    def describe(self) -> str:
        if self.uds:
            return f"unix:{self.uds}"
        return f"http://{self.host}:{self.port}"


def _load_config(config_dir: Optional[str]) -> Tuple[Path, GateConfig]:
    cfg_dir = resolve_config_dir(config_dir)
    try:
        return cfg_dir, load_gate_config(cfg_dir / CONFIG_FILENAME)
    except ConfigError as exc:
        raise CommandError(str(exc)) from exc


def determine_listen_target(args: argparse.Namespace, config: GateConfig) -> ListenTarget:
    """Combine command line overrides with ``listen`` from gate.json.

    A socket override wins outright; otherwise a host (or a bare port) selects
    TCP and everything else falls back to the configured Unix socket."""
    host = getattr(args, "host", None)
    port = getattr(args, "port", None)
    uds = getattr(args, "unix_socket", None)

    if uds and (host or port):
        raise CommandError("Cannot combine --unix-socket with --host/--port overrides", exit_code=2)
    if uds:
        return ListenTarget(uds=uds)

    listen = config.listen
    host = host or listen.host_v6 or listen.host_v4
    if port is None:
        port = listen.port
    elif host is None:
        host = DEFAULT_HOST_FALLBACK

    if host:
        return ListenTarget(host=host, port=port or DEFAULT_PORT)
    return ListenTarget(uds=listen.unix_socket or DEFAULT_SOCKET_PATH)


def split_bind(bind: str) -> Tuple[str, int]:
    """Split ``host:port`` or ``[v6]:port`` from admin.bind."""
    value = bind.strip()
    if value.startswith("[") and "]:" in value:
        host, _, port = value[1:].partition("]:")
    elif value.count(":") == 1:
        host, _, port = value.partition(":")
    else:
        raise ValueError(f"Bind value {bind!r} needs host:port")
    return host, int(port)


def admin_base_url(config: GateConfig) -> str:
    binds = []
    for candidate in config.admin.bind:
        try:
            binds.append(split_bind(candidate))
        except ValueError:
            continue
    if not binds:
        raise ConfigError("No usable admin.bind entries configured")

    # talk to loopback when the gate listens there
    binds.sort(key=lambda item: item[0] not in PREFERRED_ADMIN_HOSTS)
    host, port = binds[0]
    if ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{port}"


def _admin_endpoint(args: argparse.Namespace, config: GateConfig) -> Tuple[str, Optional[str]]:
    if args.admin_url and args.unix_socket:
        raise CommandError("Cannot combine --admin-url with --unix-socket")
    if args.admin_url:
        return args.admin_url.rstrip("/"), None
    uds = args.unix_socket or config.listen.unix_socket
    if uds:
        return "http://unix", uds
    try:
        return admin_base_url(config), None
    except ConfigError as exc:
        raise CommandError(str(exc)) from exc


def post_admin(url: str, timeout: float, uds: Optional[str]) -> str:
    """POST to an admin endpoint and return the reported status."""
    transport = httpx.HTTPTransport(uds=uds) if uds else None
    try:
        with httpx.Client(timeout=timeout, transport=transport) as client:
            response = client.post(url)
    except httpx.HTTPError as exc:
        raise CommandError(f"Admin request to {url} failed: {exc}") from exc

    if response.is_error:
        raise CommandError(f"Admin endpoint returned {response.status_code}: {response.text}")
    try:
        return str(response.json()["status"])
    except (ValueError, KeyError, TypeError):
        return f"ok ({response.status_code})"


def _command_start(args: argparse.Namespace) -> int:
    cfg_dir, config = _load_config(args.config_dir)
    target = determine_listen_target(args, config)

    app = create_app(cfg_dir)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=target.host or DEFAULT_HOST_FALLBACK,
            port=target.port or DEFAULT_PORT,
            uds=target.uds,
            reload=bool(args.reload),
            log_level=config.logging.level.lower(),
        )
    )
    app.state.server = server
    if target.uds:
        Path(target.uds).unlink(missing_ok=True)
    print(f"ipgate listening on {target.describe()}")
    server.run()
    return 0


def _command_admin(args: argparse.Namespace) -> int:
    _, config = _load_config(args.config_dir)
    base_url, uds = _admin_endpoint(args, config)
    print(post_admin(f"{base_url}/admin/{args.action}", args.timeout, uds))
    return 0


def _command_check(args: argparse.Namespace) -> int:
    allowed_ips = args.allowed
    resolve_hostnames = bool(args.resolve_hostnames)
    if allowed_ips is None:
        _, config = _load_config(args.config_dir)
        allowed_ips = config.access.allowed_ips
        resolve_hostnames = resolve_hostnames or config.access.resolve_hostnames

    matcher = AddressMatcher(
        resolver=resolver_for(resolve_hostnames),
        diagnostics=logging_sink("WARNING"),
    )
    allowed = matcher.is_allowed(args.client_ip, allowed_ips)
    print("allowed" if allowed else "denied")
    return 0 if allowed else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="IP allowlist access gate")
    parser.add_argument("--config-dir", help="Directory containing gate.json")
    subparsers = parser.add_subparsers(dest="command", required=True)

    start = subparsers.add_parser("start", help="Serve the access gate in the foreground")
    start.add_argument("--host", help="Override listen host")
    start.add_argument("--port", type=int, help="Override listen port")
    start.add_argument("--unix-socket", help="Override Unix domain socket path")
    start.add_argument("--reload", action="store_true", help="Enable auto reload (development)")
    start.set_defaults(func=_command_start)

    for name, action, help_text in (
        ("reload", "reload", "Re-read gate.json in a running gate"),
        ("stop", "shutdown", "Ask a running gate to exit"),
    ):
        admin = subparsers.add_parser(name, help=help_text)
        admin.add_argument("--admin-url", help="Admin base URL (e.g. http://127.0.0.1:8081)")
        admin.add_argument("--unix-socket", help="Unix domain socket of the gate")
        admin.add_argument("--timeout", type=float, default=5.0, help="HTTP timeout in seconds")
        admin.set_defaults(func=_command_admin, action=action)

    check = subparsers.add_parser("check", help="Check an address against an allowlist")
    check.add_argument("client_ip", help="Client address to check")
    check.add_argument("--allowed", help="Comma separated allowlist (default: access.allowed_ips)")
    check.add_argument(
        "--resolve-hostnames", action="store_true", help="Resolve hostnames in subnet entries"
    )
    check.set_defaults(func=_command_check)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        status = args.func(args)
    except CommandError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        status = exc.exit_code
    sys.exit(status)


if __name__ == "__main__":  # pragma: no cover
    main()
