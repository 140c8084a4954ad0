"""Methods shared by the server (listener) and client roles."""

from __future__ import annotations

import logging
import os
import secrets
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.table import Table

from bcvi import __version__

if TYPE_CHECKING:
    from bcvi.core.config import Settings
    from bcvi.plugins.registry import Registry

logger = logging.getLogger(__name__)

START_MARKER = "## START-BCVI"
END_MARKER = "## END-BCVI"


class Base:
    """Common base of both roles. Plugins hook the roles, never this class."""

    def __init__(self, registry: Registry, settings: Settings) -> None:
        self.registry = registry
        self.settings = settings

    @property
    def config_dir(self) -> Path:
        return self.settings.config_dir

    @property
    def listen_port(self) -> int:
        return self.settings.port

    def commands_text(self) -> str:
        """Plain-text description of every registered command."""
        lines = ["COMMANDS", ""]
        for command in sorted(self.registry.commands, key=lambda c: c.name):
            lines.append(f"  {command.name}")
            lines.append(f"      {command.description}")
            lines.append("")
        return "\n".join(lines)

    def alias_block(self) -> str:
        lines = [START_MARKER, *self.registry.aliases, END_MARKER]
        return "\n".join(lines) + "\n"

    def listener_key(self) -> str | None:
        path = self.settings.listener_key_path
        if not path.exists():
            return None
        return path.read_text().strip() or None

    def new_listener_key(self) -> str:
        """Generate a fresh auth key and store it readable only by the owner."""
        key = secrets.token_hex(16)
        path = self.settings.listener_key_path
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(key + "\n")
        return key

    def start_listener(self) -> None:
        from bcvi.core.logging import AuditLogger, setup_logging
        from bcvi.server.service import ListenerService

        setup_logging(self.settings.listener_log_level, self.settings.app_log_path)
        key = self.new_listener_key()
        audit = AuditLogger(self.settings.audit_log_path)
        address = (self.settings.host, self.listen_port)

        with ListenerService(self.registry, self.settings, address, key, audit) as service:
            logger.info("Listener on %s:%d (pid %d)", address[0], address[1], os.getpid())
            try:
                service.serve_forever()
            except KeyboardInterrupt:
                logger.info("Listener stopped")

    def show_version(self) -> None:
        click.echo(f"bcvi {__version__}")

    def plugin_help(self) -> None:
        console = Console()
        plugins = self.registry.plugins
        if not plugins:
            console.print(f"[dim]No plugins loaded. Add .py files to {self.config_dir}/.[/dim]")
            return

        table = Table(title=f"Loaded Plugins ({len(plugins)})")
        table.add_column("Name", style="cyan")
        table.add_column("Version")
        table.add_column("Description")
        for manifest in plugins:
            table.add_row(manifest.name, manifest.version, manifest.description)
        console.print(table)
