"""Forking TCP listener: one child process per connection."""

from __future__ import annotations

import logging
import socketserver
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bcvi.core.config import Settings
    from bcvi.core.logging import AuditLogger
    from bcvi.plugins.registry import Registry

logger = logging.getLogger(__name__)


class ConnectionHandler(socketserver.StreamRequestHandler):
    server: ListenerService

    def handle(self) -> None:
        listener = self.server.registry.new_server(
            self.server.settings,
            self.rfile,
            self.wfile,
            connection=self.connection,
            auth_key=self.server.auth_key,
            audit=self.server.audit,
            peer=self.client_address,
        )
        listener.dispatch()


class ListenerService(socketserver.ForkingMixIn, socketserver.TCPServer):
    """Serves back-channel commands using the registry built at startup."""

    allow_reuse_address = True

    def __init__(
        self,
        registry: Registry,
        settings: Settings,
        address: tuple[str, int],
        auth_key: str | None,
        audit: AuditLogger | None = None,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self.auth_key = auth_key
        self.audit = audit
        super().__init__(address, ConnectionHandler)

    def handle_error(self, request: Any, client_address: Any) -> None:
        # Only this connection is lost; the child closes the socket afterwards
        logger.exception("Connection from %s failed", client_address)
