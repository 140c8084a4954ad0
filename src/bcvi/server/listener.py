"""Listener (server role): reads one request per connection and dispatches it.

Handlers are zero-argument ``execute_<command>`` methods. Plugins add
commands by hooking the server role with a mixin that defines more of them,
or override the built-ins by defining the same names.
"""

from __future__ import annotations

import hmac
import logging
import shlex
import subprocess
import time
from enum import Enum
from typing import TYPE_CHECKING, Any, BinaryIO

from bcvi.base import Base
from bcvi.core.errors import HandlerFailure, ProtocolError
from bcvi.protocol import (
    Request,
    Response,
    StatusCode,
    encode_response,
    read_body,
    read_command,
    read_headers,
)

if TYPE_CHECKING:
    from bcvi.core.config import Settings
    from bcvi.core.logging import AuditLogger
    from bcvi.plugins.registry import Registry

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    AWAITING_REQUEST_LINE = "awaiting_request_line"
    AWAITING_HEADERS = "awaiting_headers"
    AWAITING_BODY = "awaiting_body"
    DISPATCHING = "dispatching"
    RESPONDING = "responding"
    CLOSED = "closed"


class Listener(Base):
    """Base implementation of the server role, one instance per connection."""

    def __init__(
        self,
        registry: Registry,
        settings: Settings,
        rfile: BinaryIO,
        wfile: BinaryIO,
        *,
        connection: Any = None,
        auth_key: str | None = None,
        audit: AuditLogger | None = None,
        peer: Any = None,
    ) -> None:
        super().__init__(registry, settings)
        self._rfile = rfile
        self._wfile = wfile
        self._connection = connection
        self._auth_key = auth_key
        self._audit = audit
        self._peer = peer
        self._request: Request | None = None
        self._response_sent = False
        self.status_sent: int | None = None
        self.state = ConnectionState.AWAITING_REQUEST_LINE

    # --- accessors for handlers ---

    @property
    def request(self) -> Request:
        if self._request is None:
            raise ProtocolError("No request has been read yet")
        return self._request

    def read_request_body(self) -> bytes:
        return self.request.body

    def filenames(self) -> list[str]:
        """Filenames from the request body, as URLs the local editor can open."""
        alias = self.request.header("Host-Alias")
        names = self.request.filenames
        if not alias:
            return names
        return [self.remote_url(alias, name) for name in names]

    def remote_url(self, host_alias: str, path: str) -> str:
        return f"scp://{host_alias}/{path}"

    def raw_connection(self) -> Any:
        """Hand the connection to the handler, which then owns the response."""
        self._response_sent = True
        return self._connection if self._connection is not None else self._wfile

    @property
    def response_sent(self) -> bool:
        return self._response_sent

    def send_response(
        self,
        status: int,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
    ) -> None:
        if self._response_sent:
            raise ProtocolError("A response has already been sent on this connection")
        self.state = ConnectionState.RESPONDING
        self._wfile.write(encode_response(Response(int(status), dict(headers or {}), body or b"")))
        self._wfile.flush()
        self._response_sent = True
        self.status_sent = int(status)

    # --- dispatch ---

    def check_auth(self) -> bool:
        if self._auth_key is None:
            return True
        offered = self.request.header("Auth-Key", "") or ""
        return hmac.compare_digest(offered.encode(), self._auth_key.encode())

    def dispatch(self) -> None:
        """Read one request, run its handler and make sure it is answered."""
        start = time.monotonic()
        self.state = ConnectionState.AWAITING_REQUEST_LINE
        command = read_command(self._rfile)
        self.state = ConnectionState.AWAITING_HEADERS
        headers = read_headers(self._rfile)
        self.state = ConnectionState.AWAITING_BODY
        body = read_body(self._rfile, headers)
        self._request = Request(command=command, headers=headers, body=body)
        self.state = ConnectionState.DISPATCHING

        try:
            if not self.check_auth():
                logger.warning("Bad auth key for %r from %s", command, self._peer)
                self.send_response(StatusCode.PERMISSION_DENIED)
                self._record("denied", command, start)
                return

            descriptor = self.registry.command(command)
            handler = getattr(self, descriptor.handler_name, None) if descriptor else None
            if handler is None:
                logger.warning("Unrecognised command %r from %s", command, self._peer)
                self.send_response(StatusCode.UNRECOGNISED_COMMAND)
                self._record("unrecognised", command, start)
                return

            logger.info("Command: %s (%s)", command, self.request.header("Host-Alias", "-"))
            try:
                handler()
            except Exception as e:
                logger.error("Handler for %s failed: %s", command, e)
                self._record("handler_error", command, start, error=str(e))
                raise HandlerFailure(command) from e

            if not self._response_sent:
                self.send_response(StatusCode.SUCCESS)
            self._record("command", command, start)
        finally:
            self.state = ConnectionState.CLOSED

    def _record(self, event_type: str, command: str, start: float, error: str = "") -> None:
        if self._audit is None:
            return
        self._audit.log(
            event_type,
            command=command,
            host_alias=self.request.header("Host-Alias", "") or "",
            status=self.status_sent or 0,
            filenames=self.request.filenames if event_type != "denied" else None,
            duration_ms=int((time.monotonic() - start) * 1000),
            error=error,
        )

    # --- built-in commands ---

    def editor_command(self, wait: bool) -> list[str]:
        cmd = shlex.split(self.settings.vi_command)
        if wait:
            cmd.append("--nofork")
        return cmd

    def execute_vi(self) -> None:
        subprocess.Popen(self.editor_command(wait=False) + self.filenames(), start_new_session=True)

    def execute_viwait(self) -> None:
        subprocess.run(self.editor_command(wait=True) + self.filenames(), check=True)

    def execute_commands_pod(self) -> None:
        self.send_response(
            StatusCode.RESPONSE_FOLLOWS,
            {"Content-type": "text/plain; charset=utf-8"},
            self.commands_text().encode("utf-8"),
        )
