"""HookChain: per-role override chain that plugins splice themselves into.

Each hooked class is a plain mixin. Building the chain composes every entry,
most recently hooked first, into a single class, so ordinary method
resolution walks the chain head to tail and ``super()`` inside a plugin
method calls the next implementation down the chain.
"""

from __future__ import annotations

import logging

from bcvi.core.errors import RegistrationConflict

logger = logging.getLogger(__name__)


class HookChain:
    """Ordered override chain for one role (server or client)."""

    def __init__(self, role: str, base: type, root: type | None = None) -> None:
        self._role = role
        self._base = base
        # Hooked classes may not inherit from this themselves
        self._root = root or base
        self._entries: list[type] = [base]
        self._built: type | None = None

    @property
    def role(self) -> str:
        return self._role

    @property
    def entries(self) -> tuple[type, ...]:
        return tuple(self._entries)

    @property
    def head(self) -> type:
        return self._entries[0]

    def hook(self, cls: type, plugin_id: str) -> None:
        if self._built is not None:
            raise RegistrationConflict(
                f"Plugin {plugin_id} hooked the {self._role} role after startup"
            )
        if not isinstance(cls, type):
            raise RegistrationConflict(
                f"Plugin {plugin_id} must hook the {self._role} role with a class, got {cls!r}"
            )
        if issubclass(cls, self._root):
            raise RegistrationConflict(
                f"Plugin {plugin_id}: {cls.__name__} inherits from {self._root.__name__}; "
                f"hooked classes must be plain mixins"
            )
        if cls in self._entries:
            raise RegistrationConflict(
                f"Plugin {plugin_id}: {cls.__name__} is already in the {self._role} chain"
            )
        self._entries.insert(0, cls)
        logger.debug("Plugin %s hooked %s role with %s", plugin_id, self._role, cls.__name__)

    def build(self) -> type:
        """Compose the chain into the class the role is instantiated from."""
        if self._built is not None:
            return self._built
        if len(self._entries) == 1:
            self._built = self._base
            return self._built
        try:
            self._built = type(
                self._base.__name__,
                tuple(self._entries),
                {
                    "__module__": self._base.__module__,
                    "__qualname__": self._base.__qualname__,
                    "hook_chain": tuple(c.__qualname__ for c in self._entries),
                },
            )
        except TypeError as e:
            raise RegistrationConflict(f"Cannot compose the {self._role} chain: {e}") from e
        return self._built
