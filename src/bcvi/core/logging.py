"""Application logging and append-only JSONL audit trail."""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

_CONTROL_RE = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
_MAX_FIELD_LEN = 2_000


def _sanitize(value: Any) -> Any:
    """Strip control characters and truncate large strings."""
    if isinstance(value, str):
        cleaned = _CONTROL_RE.sub("", value)
        if len(cleaned) > _MAX_FIELD_LEN:
            cleaned = cleaned[:_MAX_FIELD_LEN] + f"... (truncated, {len(cleaned)} total)"
        return cleaned
    if isinstance(value, dict):
        return {k: _sanitize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(v) for v in value]
    return value


class AuditLogger:
    """Append-only JSONL log of the commands a listener has served."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def log(
        self,
        event_type: str,
        *,
        command: str = "",
        host_alias: str = "",
        status: int = 0,
        filenames: list[str] | None = None,
        duration_ms: int = 0,
        error: str = "",
    ) -> None:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
        }
        if command:
            entry["command"] = _sanitize(command)
        if host_alias:
            entry["host_alias"] = _sanitize(host_alias)
        if status:
            entry["status"] = status
        if filenames:
            entry["filenames"] = _sanitize(filenames)
        if duration_ms:
            entry["duration_ms"] = duration_ms
        if error:
            entry["error"] = _sanitize(error)

        with open(self._path, "a") as f:
            f.write(json.dumps(entry, default=str) + "\n")


def setup_logging(log_level: str = "INFO", app_log_path: Path | None = None) -> None:
    """Configure application logging."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if app_log_path:
        app_log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(app_log_path)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(process)d %(levelname)s %(name)s %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=handlers,
        force=True,
    )
