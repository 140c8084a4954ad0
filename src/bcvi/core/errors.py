"""Exception types shared by the loader, registry, listener and client."""

from __future__ import annotations

from pathlib import Path


class BcviError(Exception):
    """Base class for all bcvi errors."""


class PluginLoadError(BcviError):
    """A plugin file could not be loaded. Always fatal at startup."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Failed to load plugin {path}: {reason}")
        self.path = path
        self.reason = reason


class RegistrationConflict(BcviError):
    """Duplicate or contradictory registration made during the load phase."""


class ProtocolError(BcviError):
    """Malformed request or response framing."""


class UnrecognizedCommand(BcviError):
    """The listener has no handler for the requested command (status 910)."""


class PermissionDenied(BcviError):
    """The listener refused the request (status 900)."""


class HandlerFailure(BcviError):
    """A command handler raised; the connection is dropped without a response."""

    def __init__(self, command: str) -> None:
        super().__init__(f"Handler for command {command!r} failed")
        self.command = command


class ServerHungUp(BcviError):
    """The listener closed the connection without sending a response."""
