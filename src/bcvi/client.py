"""Client role: sends one command to the listener and reports the result."""

from __future__ import annotations

import logging
import os
import re
import shlex
import socket
import subprocess
from typing import TYPE_CHECKING, Any

import click

from bcvi.base import END_MARKER, START_MARKER, Base
from bcvi.core.errors import (
    BcviError,
    PermissionDenied,
    ProtocolError,
    ServerHungUp,
    UnrecognizedCommand,
)
from bcvi.protocol import Request, Response, StatusCode, encode_request, read_response

if TYPE_CHECKING:
    from bcvi.core.config import ListenerConf, Settings
    from bcvi.plugins.registry import Registry

logger = logging.getLogger(__name__)

# ssh options that consume the following argument
_SSH_VALUE_OPTS = set("BbcDEeFIiJLlmOopQRSWw")
_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Client(Base):
    """Base implementation of the client role."""

    def __init__(
        self,
        registry: Registry,
        settings: Settings,
        options: dict[str, Any],
        args: list[str],
    ) -> None:
        super().__init__(registry, settings)
        self._options = dict(options)
        self._args = list(args)

    def opt(self, name: str, default: Any = None) -> Any:
        if self.registry.option(name) is None:
            raise BcviError(f"No option --{name} is registered")
        value = self._options.get(name)
        return default if value is None else value

    @property
    def args(self) -> list[str]:
        return list(self._args)

    @property
    def listen_port(self) -> int:
        return self.opt("port", self.settings.port)

    # --- sending commands ---

    def default_command(self) -> str:
        return "viwait" if self.opt("wait") else "vi"

    def run(self) -> int:
        command = self.opt("command") or self.default_command()
        response = self.send_command(command, self.args)
        return self.handle_response(command, response)

    def listener_conf(self) -> ListenerConf:
        conf = self.settings.listener_conf
        if conf is None:
            raise BcviError("BCVI_CONF is not set; log in with 'bcvi --wrap-ssh' first")
        return conf

    def translate_path(self, name: str) -> str:
        return os.path.abspath(os.path.expanduser(name))

    def build_request(self, command: str, args: list[str]) -> Request:
        conf = self.listener_conf()
        if not self.opt("no-path-xlate"):
            args = [self.translate_path(a) for a in args]
        headers = {
            "Auth-Key": conf.auth_key,
            "Host-Alias": conf.host_alias,
            "Server-Name": socket.gethostname(),
        }
        return Request(command=command, headers=headers, body="\n".join(args).encode("utf-8"))

    def connect(self, conf: ListenerConf) -> socket.socket:
        return socket.create_connection((conf.gateway, conf.port))

    def send_command(self, command: str, args: list[str]) -> Response:
        request = self.build_request(command, args)
        logger.debug("Sending %s with %d args", command, len(args))
        conf = self.listener_conf()
        try:
            with self.connect(conf) as sock:
                sock.sendall(encode_request(request))
                with sock.makefile("rb") as rfile:
                    return read_response(rfile)
        except (ConnectionResetError, BrokenPipeError) as e:
            raise ServerHungUp(f"Server hung up: {e}") from e
        except OSError as e:
            raise BcviError(
                f"Cannot reach the listener at {conf.gateway}:{conf.port}: {e}"
            ) from e

    def handle_response(self, command: str, response: Response) -> int:
        if response.status == StatusCode.SUCCESS:
            return 0
        if response.status == StatusCode.RESPONSE_FOLLOWS:
            click.echo(response.body, nl=False)
            return 0
        if response.status == StatusCode.PERMISSION_DENIED:
            raise PermissionDenied("Listener refused the request: permission denied")
        if response.status == StatusCode.UNRECOGNISED_COMMAND:
            raise UnrecognizedCommand(f"Listener does not recognise command {command!r}")
        raise ProtocolError(f"Unexpected response: {response.status} {response.reason}")

    # --- option handlers ---

    def add_aliases(self) -> None:
        rc = self.settings.shell_rc
        block = self.alias_block()
        text = rc.read_text() if rc.exists() else ""
        pattern = re.compile(
            rf"^{re.escape(START_MARKER)}$.*?^{re.escape(END_MARKER)}$\n?", re.M | re.S
        )
        if pattern.search(text):
            text = pattern.sub(lambda _: block, text, count=1)
        else:
            if text and not text.endswith("\n"):
                text += "\n"
            text += block
        rc.write_text(text)
        click.echo(f"Aliases written to {rc}")

    def install_to_hosts(self) -> None:
        hosts = [self.opt("install"), *self.args]
        files = sorted(str(p) for p in self.registry.installables)
        for host in hosts:
            click.echo(f"Installing to {host}")
            try:
                subprocess.run(["ssh", host, "mkdir -p .config/bcvi"], check=True)
                if files:
                    subprocess.run(["scp", "-q", *files, f"{host}:.config/bcvi/"], check=True)
                subprocess.run(["ssh", host, "bcvi --add-aliases"], check=True)
            except (OSError, subprocess.CalledProcessError) as e:
                raise BcviError(f"Install to {host} failed: {e}") from e

    def unpack_term(self) -> None:
        term = os.environ.get("TERM", "")
        if "\n" not in term:
            return
        real_term, _, packed = term.partition("\n")
        lines = [f"TERM={shlex.quote(real_term)}", "export TERM"]
        for entry in packed.split("\n"):
            name, sep, value = entry.partition("=")
            if sep and _ENV_NAME_RE.match(name):
                lines += [f"{name}={shlex.quote(value)}", f"export {name}"]
        click.echo("\n".join(lines))

    def ssh_target(self, ssh_args: list[str]) -> str:
        skip = False
        for arg in ssh_args:
            if skip:
                skip = False
                continue
            if arg.startswith("-"):
                skip = len(arg) == 2 and arg[1] in _SSH_VALUE_OPTS
                continue
            return arg
        raise BcviError("No host found in the ssh arguments")

    def wrap_ssh(self) -> int:
        ssh_args = self.args
        host = self.ssh_target(ssh_args)
        key = self.listener_key()
        if key is None:
            raise BcviError(
                f"No listener key in {self.settings.listener_key_path}; start 'bcvi --listener' first"
            )
        remote_port = self.settings.forwarded_port
        conf = f"{host}:localhost:{remote_port}:{key}"
        env = dict(os.environ)
        env["TERM"] = f"{env.get('TERM', 'xterm')}\nBCVI_CONF={conf}"
        cmd = ["ssh", "-R", f"{remote_port}:localhost:{self.listen_port}", *ssh_args]
        logger.debug("Running %s", " ".join(cmd))
        return subprocess.run(cmd, env=env).returncode
