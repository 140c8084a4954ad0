"""Tests for configuration."""

from pathlib import Path

import pytest

from bcvi.core.config import ListenerConf, Settings
from bcvi.core.errors import BcviError


def test_defaults():
    s = Settings(_env_file=None)
    assert s.port == 48888
    assert s.forwarded_port == 48888
    assert s.vi_command == "gvim"
    assert s.config_dir == Path.home() / ".config" / "bcvi"
    assert s.plugins_dir == s.config_dir
    assert s.listener_conf is None


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("BCVI_PORT", "5000")
    monkeypatch.setenv("BCVI_VI_COMMAND", "emacsclient -n")
    s = Settings(_env_file=None)
    assert s.port == 5000
    assert s.vi_command == "emacsclient -n"


def test_bcvi_conf_from_env(monkeypatch):
    monkeypatch.setenv("BCVI_CONF", "devbox:localhost:50000:abc123")
    conf = Settings(_env_file=None).listener_conf
    assert conf == ListenerConf("devbox", "localhost", 50000, "abc123")


def test_bad_bcvi_conf():
    with pytest.raises(BcviError):
        Settings(_env_file=None, bcvi_conf="nonsense").listener_conf


def test_bcvi_conf_port_must_be_numeric():
    with pytest.raises(BcviError, match="alias:gateway:port:key"):
        Settings(_env_file=None, bcvi_conf="devbox:localhost:notaport:key").listener_conf


def test_remote_port():
    s = Settings(_env_file=None, remote_port=50001)
    assert s.forwarded_port == 50001


def test_derived_paths(settings, config_dir):
    assert settings.listener_key_path == config_dir / "listener_key"
    assert settings.audit_log_path.parent == config_dir / "logs"
    assert settings.app_log_path.parent == config_dir / "logs"
