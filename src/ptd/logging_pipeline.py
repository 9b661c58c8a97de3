"""Structured logging utilities for ptd tooling."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TextIO

__all__ = ["JsonFormatter", "configure_logging"]

_STRUCTURED_RESERVED_KEYS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON with their ``extra`` context."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STRUCTURED_RESERVED_KEYS
        }
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "context": context,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exception"] = record.exc_text
        return json.dumps(payload, default=str)


def configure_logging(
    *,
    level: int = logging.WARNING,
    json_output: bool = False,
    stream: TextIO | None = None,
    logger: logging.Logger | None = None,
) -> logging.Handler:
    """Attach a stream handler to the ``ptd`` logger.

    Args:
        level: Logging verbosity level.
        json_output: Emit :class:`JsonFormatter` records instead of plain text.
        stream: Target stream; defaults to ``sys.stderr``.
        logger: Logger to configure; defaults to the ``ptd`` package logger.

    Returns:
        The installed handler, so callers can remove it again.
    """

    target = logger or logging.getLogger("ptd")
    target.setLevel(level)
    handler = logging.StreamHandler(stream)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    target.addHandler(handler)
    return handler
