"""Desktop notifications: ``bnotify "build finished"`` on a remote host pops
up a notification on the workstation.

Copy this file into ~/.config/bcvi/ on the workstation (where the listener
runs); ``bcvi --install HOST`` copies it to remote hosts along with the
``bnotify`` alias.
"""

from __future__ import annotations

import shlex
import subprocess

from bcvi.plugins.registry import PluginRegistrar
from bcvi.plugins.types import BasePlugin, PluginManifest


class NotifyDesktopServer:
    """Server-role mixin adding the ``notify`` command."""

    def execute_notify(self) -> None:
        # bnotify sends one argument per line
        text = self.read_request_body().decode("utf-8", errors="replace")
        message = " ".join(line.strip() for line in text.splitlines() if line.strip())
        alias = self.request.header("Host-Alias") or "remote host"
        cmd = shlex.split(self.settings.notify_command)
        subprocess.run([*cmd, f"Notification from {alias}", message or "(no message)"], check=True)


class NotifyDesktopPlugin(BasePlugin):
    def __init__(self) -> None:
        super().__init__(
            PluginManifest(
                name="notify_desktop",
                version="1.0.0",
                description="Show messages sent with bnotify as desktop notifications",
            )
        )

    def register(self, app: PluginRegistrar) -> None:
        app.register_command(
            name="notify",
            description="Display the request body as a desktop notification on the workstation.",
        )
        app.register_aliases('test -n "${BCVI_CONF}" && alias bnotify="bcvi --no-path-xlate -c notify"')
        app.register_installable()
        app.hook_server_role(NotifyDesktopServer)


def create_plugin() -> NotifyDesktopPlugin:
    return NotifyDesktopPlugin()
