"""Plugin loading, registration and role hooking."""

from bcvi.plugins.manager import PluginManager
from bcvi.plugins.registry import PluginRegistrar, Registry, RegistryBuilder
from bcvi.plugins.types import ArgSpec, BasePlugin, CommandDescriptor, OptionDescriptor, PluginManifest

__all__ = [
    "ArgSpec",
    "BasePlugin",
    "CommandDescriptor",
    "OptionDescriptor",
    "PluginManager",
    "PluginManifest",
    "PluginRegistrar",
    "Registry",
    "RegistryBuilder",
]
