"""Wire format shared by the client and the listener.

A request is a command line followed by headers and an optional body::

    vi\r\n
    Auth-Key: 3f0c...\r\n
    Host-Alias: devbox\r\n
    Content-length: 18\r\n
    \r\n
    /home/me/notes.txt

A response has the same shape with a status line in place of the command::

    300 Response follows\r\n
    Content-length: 42\r\n
    \r\n
    <42 bytes>

Whenever a body is present it is preceded by a ``Content-length`` header
holding its exact size in bytes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import BinaryIO

from bcvi.core.errors import ProtocolError, ServerHungUp

CONTENT_LENGTH = "Content-length"
MAX_LINE = 8192
MAX_BODY = 16 * 1024 * 1024

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
_STATUS_RE = re.compile(r"^(\d{3})(?: (.*))?$")


class StatusCode(IntEnum):
    SUCCESS = 200
    RESPONSE_FOLLOWS = 300
    PERMISSION_DENIED = 900
    UNRECOGNISED_COMMAND = 910

    @property
    def text(self) -> str:
        return _STATUS_TEXT[self]


_STATUS_TEXT = {
    StatusCode.SUCCESS: "Success",
    StatusCode.RESPONSE_FOLLOWS: "Response follows",
    StatusCode.PERMISSION_DENIED: "Permission denied",
    StatusCode.UNRECOGNISED_COMMAND: "Unrecognised command",
}


def status_text(status: int) -> str:
    try:
        return StatusCode(status).text
    except ValueError:
        return "Unknown"


def _find_header(headers: dict[str, str], name: str) -> str | None:
    """Return the key in ``headers`` matching ``name`` case-insensitively."""
    wanted = name.lower()
    for key in headers:
        if key.lower() == wanted:
            return key
    return None


@dataclass
class Request:
    command: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str, default: str | None = None) -> str | None:
        key = _find_header(self.headers, name)
        return self.headers[key] if key is not None else default

    @property
    def filenames(self) -> list[str]:
        """Body interpreted as one filename per line."""
        text = self.body.decode("utf-8", errors="replace")
        return [line for line in text.split("\n") if line]


@dataclass
class Response:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def reason(self) -> str:
        return status_text(self.status)

    def header(self, name: str, default: str | None = None) -> str | None:
        key = _find_header(self.headers, name)
        return self.headers[key] if key is not None else default


# --- encoding ---


def _encode_headers(headers: dict[str, str], body: bytes) -> bytes:
    headers = dict(headers)
    key = _find_header(headers, CONTENT_LENGTH)
    if body:
        if key is not None and headers[key].strip() != str(len(body)):
            raise ProtocolError(
                f"{CONTENT_LENGTH} header says {headers[key]!r} but body is {len(body)} bytes"
            )
        headers[key or CONTENT_LENGTH] = str(len(body))
    elif key is not None and headers[key].strip() != "0":
        raise ProtocolError(f"{CONTENT_LENGTH} is {headers[key]!r} but there is no body")

    lines = []
    for name, value in headers.items():
        if not _TOKEN_RE.match(name):
            raise ProtocolError(f"Invalid header name: {name!r}")
        value = str(value)
        if "\r" in value or "\n" in value:
            raise ProtocolError(f"Header {name} contains a line break")
        lines.append(f"{name}: {value}\r\n")
    lines.append("\r\n")
    return "".join(lines).encode("utf-8") + body


def encode_request(request: Request) -> bytes:
    if not _TOKEN_RE.match(request.command):
        raise ProtocolError(f"Invalid command name: {request.command!r}")
    head = f"{request.command}\r\n".encode("utf-8")
    return head + _encode_headers(request.headers, request.body)


def encode_response(response: Response) -> bytes:
    if not 100 <= response.status <= 999:
        raise ProtocolError(f"Status must be a 3-digit code, got {response.status}")
    head = f"{response.status} {status_text(response.status)}\r\n".encode("utf-8")
    return head + _encode_headers(response.headers, response.body)


# --- decoding ---


def _read_line(stream: BinaryIO) -> str | None:
    """Read one CRLF (or LF) terminated line; None at end of stream."""
    line = stream.readline(MAX_LINE + 1)
    if not line:
        return None
    if not line.endswith(b"\n"):
        raise ProtocolError("Line too long or truncated")
    return line.rstrip(b"\r\n").decode("utf-8", errors="replace")


def read_headers(stream: BinaryIO) -> dict[str, str]:
    headers: dict[str, str] = {}
    while True:
        line = _read_line(stream)
        if line is None:
            raise ProtocolError("Connection closed while reading headers")
        if line == "":
            return headers
        name, sep, value = line.partition(":")
        if not sep or not _TOKEN_RE.match(name):
            raise ProtocolError(f"Malformed header line: {line!r}")
        # Only the single separator space is framing
        headers[name] = value[1:] if value.startswith(" ") else value


def read_body(stream: BinaryIO, headers: dict[str, str]) -> bytes:
    key = _find_header(headers, CONTENT_LENGTH)
    if key is None:
        return b""
    try:
        length = int(headers[key])
    except ValueError:
        raise ProtocolError(f"Bad {CONTENT_LENGTH}: {headers[key]!r}") from None
    if length < 0 or length > MAX_BODY:
        raise ProtocolError(f"{CONTENT_LENGTH} out of range: {length}")
    body = stream.read(length) if length else b""
    if len(body) != length:
        raise ProtocolError(f"Body truncated: expected {length} bytes, got {len(body)}")
    return body


def read_command(stream: BinaryIO) -> str:
    """Read the request line, which holds just the command name."""
    command = _read_line(stream)
    if command is None:
        raise ProtocolError("Connection closed before a request was sent")
    command = command.strip()
    if not _TOKEN_RE.match(command):
        raise ProtocolError(f"Invalid command name: {command!r}")
    return command


def read_request(stream: BinaryIO) -> Request:
    command = read_command(stream)
    headers = read_headers(stream)
    return Request(command=command, headers=headers, body=read_body(stream, headers))


def read_response(stream: BinaryIO) -> Response:
    line = _read_line(stream)
    if line is None:
        raise ServerHungUp("Server hung up")
    match = _STATUS_RE.match(line)
    if not match:
        raise ProtocolError(f"Malformed status line: {line!r}")
    headers = read_headers(stream)
    return Response(
        status=int(match.group(1)),
        headers=headers,
        body=read_body(stream, headers),
    )
