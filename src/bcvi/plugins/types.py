"""Plugin system types: descriptors, manifest and the plugin protocol."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from bcvi.plugins.registry import PluginRegistrar


class ArgSpec(str, Enum):
    NONE = "none"
    STRING = "string"
    INT = "int"


@dataclass(frozen=True)
class OptionDescriptor:
    """A command-line option contributed by the host or a plugin.

    When ``dispatch_to`` is set, giving the option on the command line calls
    that method on the client object and then exits.
    """

    name: str
    summary: str
    description: str
    alias: str | None = None
    arg_spec: ArgSpec = ArgSpec.NONE
    arg_name: str = ""
    dispatch_to: str | None = None

    @property
    def takes_value(self) -> bool:
        return self.arg_spec is not ArgSpec.NONE


@dataclass(frozen=True)
class CommandDescriptor:
    """A back-channel command the listener will run for a client."""

    name: str
    description: str
    dispatch_to: str = ""

    @property
    def handler_name(self) -> str:
        return self.dispatch_to or f"execute_{self.name}"


@dataclass(frozen=True)
class PluginManifest:
    """Metadata about a plugin."""

    name: str
    version: str = "0.1.0"
    description: str = ""
    author: str = ""


@runtime_checkable
class Plugin(Protocol):
    """Protocol that all plugins must implement."""

    @property
    def manifest(self) -> PluginManifest: ...

    def register(self, app: PluginRegistrar) -> None: ...


class BasePlugin:
    """Convenience base class for plugins (not required, but helpful)."""

    def __init__(self, manifest: PluginManifest) -> None:
        self._manifest = manifest

    @property
    def manifest(self) -> PluginManifest:
        return self._manifest

    def register(self, app: PluginRegistrar) -> None:
        pass
