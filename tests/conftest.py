"""Shared test fixtures."""

from __future__ import annotations

import io
from collections.abc import Callable
from pathlib import Path

import pytest

from bcvi.core.config import Settings
from bcvi.plugins.registry import Registry, RegistryBuilder
from bcvi.server.listener import Listener

BUNDLED_PLUGINS_DIR = Path(__file__).resolve().parent.parent / "data" / "plugins"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's own bcvi environment out of the tests."""
    for name in ("BCVI_CONF", "BCVI_PORT", "BCVI_CONFIG_DIR", "BCVI_VI_COMMAND", "BCVI_NOTIFY_COMMAND"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    d = tmp_path / "config"
    d.mkdir()
    return d


@pytest.fixture
def settings(config_dir: Path, tmp_path: Path) -> Settings:
    """Settings pointing at temp directories."""
    return Settings(
        _env_file=None,
        config_dir=config_dir,
        shell_rc=tmp_path / ".bashrc",
    )


@pytest.fixture
def builder() -> RegistryBuilder:
    return RegistryBuilder()


@pytest.fixture
def write_plugin(config_dir: Path) -> Callable[[str, str], Path]:
    """Write a plugin file into the config dir and return its path."""

    def _write(filename: str, code: str) -> Path:
        path = config_dir / filename
        path.write_text(code)
        return path

    return _write


@pytest.fixture
def make_listener(settings: Settings) -> Callable[..., tuple[Listener, io.BytesIO]]:
    """Build a listener reading ``raw`` and writing into a BytesIO."""

    def _make(registry: Registry, raw: bytes, **kwargs) -> tuple[Listener, io.BytesIO]:
        out = io.BytesIO()
        listener = registry.new_server(settings, io.BytesIO(raw), out, **kwargs)
        return listener, out

    return _make


@pytest.fixture
def bundled_plugins_dir() -> Path:
    return BUNDLED_PLUGINS_DIR
