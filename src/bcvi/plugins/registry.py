"""Registry of options, commands, aliases and installable files.

Everything is registered on a ``RegistryBuilder`` during the load phase (the
host's defaults first, then each plugin in load order). ``build()`` then
freezes it into a ``Registry`` that the CLI, the client and the listener read
from for the rest of the process.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, BinaryIO

from bcvi.core.errors import RegistrationConflict
from bcvi.plugins.hooks import HookChain
from bcvi.plugins.types import ArgSpec, CommandDescriptor, OptionDescriptor, PluginManifest

if TYPE_CHECKING:
    from bcvi.client import Client
    from bcvi.core.config import Settings
    from bcvi.server.listener import Listener

logger = logging.getLogger(__name__)

# Provided by the CLI layer itself
_RESERVED_OPTIONS = frozenset({"help"})

_DEFAULT_ALIASES = (
    'test -n "$(command -v bcvi)" && eval "$(bcvi --unpack-term)"',
    'test -n "${BCVI_CONF}" && alias vi="bcvi"',
    'test -n "${BCVI_CONF}" && alias suvi="EDITOR=\\"bcvi -c viwait\\" sudoedit"',
)


class Registry:
    """Read-only view of everything registered during the load phase."""

    def __init__(
        self,
        options: dict[str, OptionDescriptor],
        commands: dict[str, CommandDescriptor],
        aliases: list[str],
        installables: set[Path],
        plugins: list[PluginManifest],
        server_chain: HookChain,
        client_chain: HookChain,
    ) -> None:
        self._options = MappingProxyType(dict(options))
        self._commands = MappingProxyType(dict(commands))
        self._aliases = tuple(aliases)
        self._installables = frozenset(installables)
        self._plugins = tuple(plugins)
        self._server_chain = server_chain.entries
        self._client_chain = client_chain.entries
        self._server_class = server_chain.build()
        self._client_class = client_chain.build()

    @property
    def options(self) -> tuple[OptionDescriptor, ...]:
        return tuple(self._options.values())

    @property
    def commands(self) -> tuple[CommandDescriptor, ...]:
        return tuple(self._commands.values())

    @property
    def aliases(self) -> tuple[str, ...]:
        return self._aliases

    @property
    def installables(self) -> frozenset[Path]:
        return self._installables

    @property
    def plugins(self) -> tuple[PluginManifest, ...]:
        return self._plugins

    @property
    def server_chain(self) -> tuple[type, ...]:
        return self._server_chain

    @property
    def client_chain(self) -> tuple[type, ...]:
        return self._client_chain

    @property
    def server_class(self) -> type[Listener]:
        return self._server_class

    @property
    def client_class(self) -> type[Client]:
        return self._client_class

    def option(self, name: str) -> OptionDescriptor | None:
        return self._options.get(name)

    def command(self, name: str) -> CommandDescriptor | None:
        """Exact, case-sensitive lookup of a back-channel command."""
        return self._commands.get(name)

    def new_server(
        self, settings: Settings, rfile: BinaryIO, wfile: BinaryIO, **kwargs: Any
    ) -> Listener:
        return self._server_class(self, settings, rfile, wfile, **kwargs)

    def new_client(
        self,
        settings: Settings,
        options: dict[str, Any] | None = None,
        args: list[str] | None = None,
    ) -> Client:
        return self._client_class(self, settings, options or {}, args or [])


class RegistryBuilder:
    """Mutable registry used while the host and its plugins are loading."""

    def __init__(self, *, defaults: bool = True) -> None:
        from bcvi.base import Base
        from bcvi.client import Client
        from bcvi.server.listener import Listener

        self._options: dict[str, OptionDescriptor] = {}
        self._option_aliases: dict[str, str] = {}
        self._commands: dict[str, CommandDescriptor] = {}
        self._aliases: list[str] = []
        self._installables: set[Path] = set()
        self._plugins: list[PluginManifest] = []
        self.server_chain = HookChain("server", Listener, root=Base)
        self.client_chain = HookChain("client", Client, root=Base)
        self._registry: Registry | None = None
        if defaults:
            self._register_defaults()

    def _check_open(self) -> None:
        if self._registry is not None:
            raise RegistrationConflict("Registry is read-only once startup has finished")

    def add_option(self, option: OptionDescriptor) -> OptionDescriptor:
        self._check_open()
        if not option.name or not option.summary or not option.description:
            raise ValueError(f"Option {option.name!r} needs a name, summary and description")
        if option.alias is not None and len(option.alias) != 1:
            raise ValueError(f"Option {option.name}: alias must be one character")
        if not isinstance(option.arg_spec, ArgSpec):
            raise ValueError(f"Option {option.name}: unknown arg_spec {option.arg_spec!r}")
        if option.name in self._options or option.name in _RESERVED_OPTIONS:
            raise RegistrationConflict(f"Option --{option.name} is already registered")
        if option.alias is not None and option.alias in self._option_aliases:
            raise RegistrationConflict(
                f"Option alias -{option.alias} is already used by "
                f"--{self._option_aliases[option.alias]}"
            )
        self._options[option.name] = option
        if option.alias is not None:
            self._option_aliases[option.alias] = option.name
        return option

    def add_command(self, command: CommandDescriptor) -> CommandDescriptor:
        self._check_open()
        if not command.name or not command.description:
            raise ValueError(f"Command {command.name!r} needs a name and description")
        if command.name in self._commands:
            raise RegistrationConflict(f"Command {command.name!r} is already registered")
        self._commands[command.name] = command
        return command

    def add_aliases(self, *lines: str) -> None:
        self._check_open()
        self._aliases.extend(lines)

    def add_installable(self, path: Path) -> None:
        self._check_open()
        self._installables.add(Path(path))

    def add_plugin(self, manifest: PluginManifest) -> None:
        self._check_open()
        self._plugins.append(manifest)

    def for_plugin(self, plugin_id: str, path: Path) -> PluginRegistrar:
        return PluginRegistrar(self, plugin_id, path)

    def build(self) -> Registry:
        if self._registry is None:
            self._registry = Registry(
                self._options,
                self._commands,
                self._aliases,
                self._installables,
                self._plugins,
                self.server_chain,
                self.client_chain,
            )
            logger.debug(
                "Registry built: %d options, %d commands, %d plugins",
                len(self._options), len(self._commands), len(self._plugins),
            )
        return self._registry

    def _register_defaults(self) -> None:
        self.add_option(OptionDescriptor(
            name="command", alias="c", arg_spec=ArgSpec.STRING, arg_name="NAME",
            summary="Send the named command to the listener (default: vi)",
            description=(
                "Use the named back-channel command instead of the default 'vi'. "
                "Run 'bcvi -c commands_pod' to see what the listener supports."
            ),
        ))
        self.add_option(OptionDescriptor(
            name="wait", alias="w",
            summary="Wait for the editor to exit (same as -c viwait)",
            description=(
                "Ask the listener to block until the editor exits, so bcvi can be "
                "used as $EDITOR for tools like sudoedit or git commit."
            ),
        ))
        self.add_option(OptionDescriptor(
            name="no-path-xlate", alias="n",
            summary="Send arguments as given, not as absolute paths",
            description=(
                "By default file arguments are made absolute before they are sent. "
                "This option sends them untouched, which suits commands that take "
                "text rather than filenames."
            ),
        ))
        self.add_option(OptionDescriptor(
            name="listener", alias="l", dispatch_to="start_listener",
            summary="Start the listener on this workstation",
            description=(
                "Generate a fresh auth key, write it to the config directory and "
                "serve back-channel commands until interrupted."
            ),
        ))
        self.add_option(OptionDescriptor(
            name="port", alias="p", arg_spec=ArgSpec.INT, arg_name="PORT",
            summary="Port the listener binds to",
            description="Overrides BCVI_PORT (default 48888) for the listener and --wrap-ssh.",
        ))
        self.add_option(OptionDescriptor(
            name="install", arg_spec=ArgSpec.STRING, arg_name="HOST",
            dispatch_to="install_to_hosts",
            summary="Copy plugin files and aliases to a remote host",
            description=(
                "Copy every installable plugin file to HOST:.config/bcvi/ and then run "
                "'bcvi --add-aliases' there. Further arguments are treated as more hosts."
            ),
        ))
        self.add_option(OptionDescriptor(
            name="add-aliases", dispatch_to="add_aliases",
            summary="Add the bcvi aliases to your shell startup file",
            description=(
                "Write the registered alias lines between '## START-BCVI' and "
                "'## END-BCVI' markers in the shell startup file, replacing any "
                "block written previously."
            ),
        ))
        self.add_option(OptionDescriptor(
            name="unpack-term", dispatch_to="unpack_term",
            summary="Print shell code that extracts BCVI_CONF from TERM",
            description=(
                "--wrap-ssh smuggles BCVI_CONF to the remote host inside TERM. This "
                "prints the export statements that split them apart again; the "
                "aliases block evals it."
            ),
        ))
        self.add_option(OptionDescriptor(
            name="wrap-ssh", dispatch_to="wrap_ssh",
            summary="Run ssh with the listener port forwarded back",
            description=(
                "Runs ssh with the remaining arguments, adding a reverse port forward "
                "to the listener and packing BCVI_CONF into TERM. Use it as "
                "alias ssh=\"bcvi --wrap-ssh --\" on the workstation."
            ),
        ))
        self.add_option(OptionDescriptor(
            name="plugin-help", dispatch_to="plugin_help",
            summary="List loaded plugins",
            description="Show every plugin loaded from the config directory with its version and description.",
        ))
        self.add_option(OptionDescriptor(
            name="version", alias="v", dispatch_to="show_version",
            summary="Display the version number and exit",
            description="Print the bcvi version.",
        ))

        self.add_command(CommandDescriptor(
            name="vi",
            description="Open the named files in the workstation editor and return immediately.",
        ))
        self.add_command(CommandDescriptor(
            name="viwait",
            description="Open the named files in the workstation editor and wait for it to exit.",
        ))
        self.add_command(CommandDescriptor(
            name="commands_pod",
            description="Return a description of every command this listener supports.",
        ))

        self.add_aliases(*_DEFAULT_ALIASES)


class PluginRegistrar:
    """The registration API handed to one plugin while it loads."""

    def __init__(self, builder: RegistryBuilder, plugin_id: str, path: Path) -> None:
        self._builder = builder
        self._plugin_id = plugin_id
        self._path = Path(path)
        self._hooked_role: str | None = None

    @property
    def plugin_id(self) -> str:
        return self._plugin_id

    @property
    def path(self) -> Path:
        return self._path

    def register_option(self, **fields: Any) -> OptionDescriptor:
        return self._builder.add_option(OptionDescriptor(**fields))

    def register_command(self, **fields: Any) -> CommandDescriptor:
        return self._builder.add_command(CommandDescriptor(**fields))

    def register_aliases(self, *lines: str) -> None:
        self._builder.add_aliases(*lines)

    def register_installable(self) -> None:
        """Mark this plugin's file as one to copy to remote hosts."""
        self._builder.add_installable(self._path)

    def hook_server_role(self, cls: type) -> None:
        self._claim_role("server")
        self._builder.server_chain.hook(cls, self._plugin_id)

    def hook_client_role(self, cls: type) -> None:
        self._claim_role("client")
        self._builder.client_chain.hook(cls, self._plugin_id)

    def _claim_role(self, role: str) -> None:
        if self._hooked_role is not None:
            raise RegistrationConflict(
                f"Plugin {self._plugin_id} already hooked the {self._hooked_role} role; "
                f"a plugin may hook only one role, once"
            )
        self._hooked_role = role
