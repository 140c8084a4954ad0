"""PluginManager: discover and load plugins from the config directory."""

from __future__ import annotations

import importlib.util
import logging
import sys
from pathlib import Path

from bcvi.core.errors import PluginLoadError, RegistrationConflict
from bcvi.plugins.registry import RegistryBuilder
from bcvi.plugins.types import BasePlugin, Plugin

logger = logging.getLogger(__name__)

MODULE_PREFIX = "bcvi_plugin_"


class PluginManager:
    """Loads every plugin file in ``plugins_dir`` into a ``RegistryBuilder``.

    Files are loaded in ascending filename order, which is also the order
    their hooks are applied in: a later file overrides an earlier one.
    Plugins are always loaded by file location, never through ``sys.path``,
    so a copy of a plugin that ships with the application is never picked up.
    """

    def __init__(self, plugins_dir: Path, builder: RegistryBuilder) -> None:
        self._plugins_dir = plugins_dir
        self._builder = builder
        self._plugins: dict[str, Plugin] = {}

    @property
    def plugins(self) -> dict[str, Plugin]:
        return dict(self._plugins)

    @property
    def loaded(self) -> list[str]:
        return list(self._plugins)

    def plugin_files(self) -> list[Path]:
        if not self._plugins_dir.is_dir():
            return []
        return sorted(
            (p for p in self._plugins_dir.iterdir() if p.suffix == ".py" and p.is_file()),
            key=lambda p: p.name,
        )

    def discover_and_load(self) -> None:
        """Load all plugin files. Any failure aborts with PluginLoadError."""
        files = self.plugin_files()
        if not files:
            logger.debug("No plugins in %s", self._plugins_dir)
        for path in files:
            self._load_plugin_file(path)

    def _load_plugin_file(self, path: Path) -> None:
        plugin_id = path.stem
        module_name = f"{MODULE_PREFIX}{plugin_id}"

        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise PluginLoadError(path, "could not create a module spec")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise PluginLoadError(path, f"{type(e).__name__}: {e}") from e

        factory = getattr(module, "create_plugin", None)
        if factory is None:
            raise PluginLoadError(path, "no create_plugin() function")

        try:
            plugin = factory()
        except Exception as e:
            raise PluginLoadError(path, f"create_plugin() raised {type(e).__name__}: {e}") from e
        if not isinstance(plugin, (Plugin, BasePlugin)):
            raise PluginLoadError(path, "create_plugin() did not return a Plugin")

        try:
            plugin.register(self._builder.for_plugin(plugin_id, path))
        except RegistrationConflict as e:
            raise RegistrationConflict(f"{path}: {e}") from e
        except Exception as e:
            raise PluginLoadError(path, f"register() raised {type(e).__name__}: {e}") from e

        self._builder.add_plugin(plugin.manifest)
        self._plugins[plugin_id] = plugin
        logger.info("Loaded plugin: %s v%s", plugin.manifest.name, plugin.manifest.version)
