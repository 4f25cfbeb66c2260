import json
from pathlib import Path

import pytest

from ipgate.config import (
    DEFAULT_SOCKET_PATH,
    ConfigError,
    ConfigManager,
    load_gate_config,
)


def write_config(tmp_path: Path, data) -> Path:
    path = tmp_path / "gate.json"
    path.write_text(json.dumps(data))
    return path


def test_load_gate_config(tmp_path: Path):
    data = {
        "listen": {"host_v4": "0.0.0.0", "host_v6": "::", "port": 9090},
        "admin": {"bind": ["127.0.0.1:8081"], "networks": "10.10.0.0/16"},
        "logging": {"level": "debug", "access_log": False, "diagnostics_level": "warning"},
        "reload": {"enable_sighup": False},
        "access": {
            "allowed_ips": "10.0.0.0/8, 192.168.1.7",
            "resolve_hostnames": True,
            "client_ip_header": "X-Forwarded-For",
        },
    }
    cfg = load_gate_config(write_config(tmp_path, data))
    assert cfg.listen.port == 9090
    assert cfg.listen.unix_socket is None
    assert cfg.admin.networks == "10.10.0.0/16"
    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.diagnostics_level == "WARNING"
    assert cfg.reload.enable_sighup is False
    assert cfg.access.allowed_ips == "10.0.0.0/8, 192.168.1.7"
    assert cfg.access.resolve_hostnames is True
    assert cfg.access.client_ip_header == "X-Forwarded-For"
    assert cfg.access.exempt_paths == ["/healthz", "/admin"]


def test_load_gate_config_defaults_to_unix_socket(tmp_path: Path):
    cfg = load_gate_config(write_config(tmp_path, {"access": {}}))
    assert cfg.listen.unix_socket == DEFAULT_SOCKET_PATH
    assert cfg.listen.host_v4 is None
    assert cfg.listen.port is None
    assert cfg.access.allowed_ips == ""
    assert cfg.admin.bind == ["127.0.0.1:8081", "[::1]:8081"]


def test_host_without_port_uses_default_port(tmp_path: Path):
    cfg = load_gate_config(write_config(tmp_path, {"listen": {"host_v4": "127.0.0.1"}, "access": {}}))
    assert cfg.listen.port == 8080


def test_allowlist_accepts_lists(tmp_path: Path):
    data = {
        "admin": {"networks": ["127.0.0.0/8", "::1"]},
        "access": {"allowed_ips": ["10.0.0.0/8", "192.168.1.7"], "exempt_paths": ["/status"]},
    }
    cfg = load_gate_config(write_config(tmp_path, data))
    assert cfg.access.allowed_ips == "10.0.0.0/8, 192.168.1.7"
    assert cfg.admin.networks == "127.0.0.0/8, ::1"
    assert cfg.access.exempt_paths == ["/status"]


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"access": {"allowed_ips": 42}},
        {"access": {"allowed_ips": ["10.0.0.0/8", 7]}},
        {"access": {}, "logging": {"level": "LOUD"}},
        {"access": {}, "listen": {"port": "http"}},
        {"access": {}, "admin": {"bind": "127.0.0.1:8081"}},
        {"access": {"resolve_hostnames": "false"}},
        {"access": {}, "reload": {"enable_sighup": 1}},
        {"access": {}, "logging": {"access_log": "no"}},
        [],
    ],
)
def test_invalid_configs_raise(tmp_path: Path, data):
    with pytest.raises(ConfigError):
        load_gate_config(write_config(tmp_path, data))


def test_missing_and_broken_files(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_gate_config(tmp_path / "missing.json")
    path = tmp_path / "gate.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError):
        load_gate_config(path)


def test_config_manager_reload(tmp_path: Path):
    path = write_config(tmp_path, {"access": {"allowed_ips": "10.0.0.1"}})
    manager = ConfigManager(path)
    with pytest.raises(ConfigError):
        manager.current()
    assert manager.load().access.allowed_ips == "10.0.0.1"
    write_config(tmp_path, {"access": {"allowed_ips": "10.0.0.2"}})
    manager.load()
    assert manager.current().access.allowed_ips == "10.0.0.2"
