"""
Structured logging for the chatbot server.

Every record is written as one JSON object. Values passed through ``extra=``
(request ids, skill ids, chunk counts) become top-level keys, so protocol
traffic can be filtered without parsing message text.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}

# Client libraries that log every request at INFO.
QUIET_LOGGERS = ("httpx", "httpcore")


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


class JsonFormatter(logging.Formatter):
    """Render a record as a single-line JSON document."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        document: Dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            document["exc_info"] = self.formatException(record.exc_info)

        extras = {
            key: _json_safe(value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_") and key not in document
        }
        document.update(extras)
        return json.dumps(document, separators=(",", ":"))


def _resolve_level(name: Optional[str]) -> int:
    level = logging.getLevelName((name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def _file_handler(path: str) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, encoding="utf-8")


def configure_logging() -> None:
    """Install JSON logging on the root logger from LOG_LEVEL and LOG_FILE.

    Existing root handlers are replaced so repeated app startups (reloads,
    test clients) do not duplicate output.
    """
    root = logging.getLogger()
    root.setLevel(_resolve_level(os.getenv("LOG_LEVEL")))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handlers = [logging.StreamHandler()]
    log_file = os.getenv("LOG_FILE")
    file_error: Optional[OSError] = None
    if log_file:
        try:
            handlers.append(_file_handler(log_file))
        except OSError as e:
            file_error = e

    formatter = JsonFormatter()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    if file_error is not None:
        root.warning("File logging disabled", extra={"log_file": log_file, "error": str(file_error)})

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
