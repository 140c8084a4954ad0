"""Application configuration via environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import NamedTuple

from pydantic import Field
from pydantic_settings import BaseSettings

from bcvi.core.errors import BcviError


class ListenerConf(NamedTuple):
    """Parsed form of ``BCVI_CONF`` (``alias:gateway:port:key``)."""

    host_alias: str
    gateway: str
    port: int
    auth_key: str


class Settings(BaseSettings):
    model_config = {
        "env_prefix": "BCVI_",
        "env_file": ".env",
        "extra": "ignore",
        "populate_by_name": True,
    }

    # Plugins, the listener key and logs all live here
    config_dir: Path = Path.home() / ".config" / "bcvi"

    # Listener
    host: str = "localhost"
    port: int = 48888
    # Port forwarded back to the workstation by --wrap-ssh (default: same as port)
    remote_port: int | None = None

    # Commands run on the workstation
    vi_command: str = "gvim"
    notify_command: str = "notify-send"

    # Shell startup file that --add-aliases edits
    shell_rc: Path = Path.home() / ".bashrc"

    # Logging
    # Client runs stay quiet unless something goes wrong
    log_level: str = "WARNING"
    listener_log_level: str = "INFO"

    # Set on the remote side by --unpack-term, no prefix
    bcvi_conf: str = Field(default="", validation_alias="BCVI_CONF")

    @property
    def listener_conf(self) -> ListenerConf | None:
        """Parse BCVI_CONF; None when unset."""
        raw = self.bcvi_conf.strip()
        if not raw:
            return None
        parts = raw.split(":")
        if len(parts) != 4 or not parts[2].isdigit():
            raise BcviError(f"BCVI_CONF must be alias:gateway:port:key, got {raw!r}")
        alias, gateway, port, key = parts
        return ListenerConf(alias, gateway, int(port), key)

    @property
    def forwarded_port(self) -> int:
        return self.remote_port if self.remote_port is not None else self.port

    @property
    def plugins_dir(self) -> Path:
        return self.config_dir

    @property
    def listener_key_path(self) -> Path:
        return self.config_dir / "listener_key"

    @property
    def app_log_path(self) -> Path:
        return self.config_dir / "logs" / "listener.log"

    @property
    def audit_log_path(self) -> Path:
        return self.config_dir / "logs" / "audit.jsonl"


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
