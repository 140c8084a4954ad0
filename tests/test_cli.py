"""Tests for the click command built from the registry."""

from __future__ import annotations

import socket
from pathlib import Path
from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from bcvi import __version__
from bcvi.cli.app import build_cli, load_registry, main
from bcvi.client import Client
from bcvi.core.errors import PluginLoadError
from bcvi.plugins.registry import RegistryBuilder
from bcvi.plugins.types import ArgSpec
from bcvi.protocol import Response

WIDE = {"COLUMNS": "200"}


class Greeter:
    def greet(self):
        click.echo(f"hello {self.opt('name', 'world')}")

    def fail(self):
        return 3

    def set_level(self):
        click.echo(f"level={self.opt('level')}")


@pytest.fixture
def registry():
    builder = RegistryBuilder()
    app = builder.for_plugin("greeter", Path("/config/greeter.py"))
    app.register_option(
        name="greet", dispatch_to="greet",
        summary="Print a greeting", description="Prints a greeting and exits without contacting the listener.",
    )
    app.register_option(
        name="name", arg_spec=ArgSpec.STRING, arg_name="WHO",
        summary="Who to greet", description="Name used by --greet.",
    )
    app.register_option(
        name="fail", dispatch_to="fail",
        summary="Exit with status 3", description="Used to check exit codes.",
    )
    app.register_option(
        name="level", arg_spec=ArgSpec.INT, arg_name="N", dispatch_to="set_level",
        summary="Print the level", description="Prints the level given and exits.",
    )
    app.hook_client_role(Greeter)
    return builder.build()


class TestHelp:
    def test_help_lists_every_option(self, registry, settings):
        result = CliRunner().invoke(build_cli(registry, settings), ["--help"], env=WIDE)
        assert result.exit_code == 0
        for option in registry.options:
            assert f"--{option.name}" in result.output
            assert option.summary in result.output
            assert option.description in result.output

    def test_help_lists_commands(self, registry, settings):
        result = CliRunner().invoke(build_cli(registry, settings), ["--help"], env=WIDE, terminal_width=200)
        assert "Back-channel commands" in result.output
        for command in registry.commands:
            assert command.name in result.output
            assert command.description in result.output

    def test_option_alias_shown(self, registry, settings):
        result = CliRunner().invoke(build_cli(registry, settings), ["--help"], env=WIDE)
        assert "-c, --command NAME" in result.output


class TestDispatchOptions:
    def test_version(self, registry, settings):
        result = CliRunner().invoke(build_cli(registry, settings), ["--version"])
        assert result.exit_code == 0
        assert result.output == f"bcvi {__version__}\n"

    def test_plugin_option_dispatches_to_client_hook(self, registry, settings):
        cli = build_cli(registry, settings)
        result = CliRunner().invoke(cli, ["--greet", "--name", "devbox"])
        assert result.exit_code == 0
        assert result.output == "hello devbox\n"

    def test_dispatch_return_value_is_exit_code(self, registry, settings):
        result = CliRunner().invoke(build_cli(registry, settings), ["--fail"])
        assert result.exit_code == 3

    def test_int_option_zero_still_dispatches(self, registry, settings):
        with patch.object(Client, "send_command") as send:
            result = CliRunner().invoke(build_cli(registry, settings), ["--level", "0"])
        assert result.exit_code == 0
        assert result.output == "level=0\n"
        send.assert_not_called()

    def test_dispatch_stops_before_sending(self, registry, settings):
        with patch.object(Client, "send_command") as send:
            result = CliRunner().invoke(build_cli(registry, settings), ["--greet", "file.txt"])
        assert result.exit_code == 0
        send.assert_not_called()

    def test_unpack_term(self, registry, settings):
        result = CliRunner().invoke(
            build_cli(registry, settings),
            ["--unpack-term"],
            env={"TERM": "xterm\nBCVI_CONF=devbox:localhost:1:k"},
        )
        assert result.exit_code == 0
        assert "export BCVI_CONF" in result.output

    def test_plugin_help(self, settings, bundled_plugins_dir):
        settings.config_dir = bundled_plugins_dir
        registry = load_registry(settings)
        result = CliRunner().invoke(build_cli(registry, settings), ["--plugin-help"], env=WIDE)
        assert result.exit_code == 0
        assert "notify_desktop" in result.output


class TestSendingCommands:
    def test_missing_conf_is_an_error(self, registry, settings):
        result = CliRunner().invoke(build_cli(registry, settings), ["notes.txt"])
        assert result.exit_code == 1
        assert "BCVI_CONF" in result.output

    def test_malformed_conf_is_an_error(self, registry, settings):
        settings.bcvi_conf = "devbox:localhost:notaport:key"
        result = CliRunner().invoke(build_cli(registry, settings), ["notes.txt"])
        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "bcvi: BCVI_CONF must be" in result.output

    def test_listener_not_running_is_an_error(self, registry, settings):
        with socket.socket() as unused:
            unused.bind(("127.0.0.1", 0))
            port = unused.getsockname()[1]
        settings.bcvi_conf = f"devbox:127.0.0.1:{port}:key"
        result = CliRunner().invoke(build_cli(registry, settings), ["notes.txt"])
        assert result.exit_code == 1
        assert "bcvi: Cannot reach the listener" in result.output

    def test_sends_command_option(self, registry, settings):
        settings.bcvi_conf = "devbox:localhost:48888:secret"
        with patch.object(Client, "send_command", return_value=Response(200)) as send:
            result = CliRunner().invoke(
                build_cli(registry, settings), ["-n", "-c", "notify", "build", "done"]
            )
        assert result.exit_code == 0
        send.assert_called_once_with("notify", ["build", "done"])

    def test_wait_uses_viwait(self, registry, settings):
        settings.bcvi_conf = "devbox:localhost:48888:secret"
        with patch.object(Client, "send_command", return_value=Response(200)) as send:
            CliRunner().invoke(build_cli(registry, settings), ["-w", "/tmp/x"])
        assert send.call_args.args[0] == "viwait"

    def test_unrecognised_command_exit_status(self, registry, settings):
        settings.bcvi_conf = "devbox:localhost:48888:secret"
        with patch.object(Client, "send_command", return_value=Response(910)):
            result = CliRunner().invoke(build_cli(registry, settings), ["-c", "scpd", "x"])
        assert result.exit_code == 1
        assert "does not recognise command 'scpd'" in result.output


class TestStartup:
    def test_load_registry_reads_config_dir(self, settings, write_plugin):
        write_plugin("extra.py", '''
from bcvi.plugins.types import BasePlugin, PluginManifest

class _Plugin(BasePlugin):
    def register(self, app):
        app.register_command(name="extra", description="Extra command")

def create_plugin():
    return _Plugin(PluginManifest(name="extra"))
''')
        assert load_registry(settings).command("extra") is not None

    def test_broken_plugin_aborts(self, settings, write_plugin):
        write_plugin("broken.py", "this is not python\n")
        with pytest.raises(PluginLoadError):
            load_registry(settings)

    def test_main_exits_on_broken_plugin(self, settings, write_plugin, monkeypatch, capsys):
        write_plugin("broken.py", "this is not python\n")
        monkeypatch.setattr("bcvi.cli.app.get_settings", lambda: settings)
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 1
        assert "broken.py" in capsys.readouterr().err

    def test_main_version(self, settings, monkeypatch, capsys):
        monkeypatch.setattr("bcvi.cli.app.get_settings", lambda: settings)
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert capsys.readouterr().out == f"bcvi {__version__}\n"
