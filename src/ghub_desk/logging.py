"""JSON log output for ghub-desk.

Records are written one JSON object per line to stderr, leaving stdout to
command output. Fields passed through ``extra=`` are kept under ``"extra"``;
anything that looks like a credential is masked before it is serialised.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, TextIO

# Attributes every LogRecord carries; anything else on a record came from ``extra``.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}

_SECRET_KEYS = frozenset({"token", "github_token", "private_key", "authorization", "password"})
_MASK = "[masked]"

_NOISY_LOGGERS = ("github", "urllib3", "sqlalchemy")


def _scrub(key: str, value: Any) -> Any:
    if key.lower() in _SECRET_KEYS:
        return _MASK
    if isinstance(value, Mapping):
        return {str(k): _scrub(str(k), v) for k, v in value.items()}
    return value


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: _scrub(key, value)
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (record)
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra = _extra_fields(record)
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def json_handler(stream: TextIO | None = None) -> logging.Handler:
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JsonFormatter())
    return handler


def configure_logging(level: str, *, debug: bool = False, stream: TextIO | None = None) -> None:
    """Install a single JSON handler on the root logger.

    Calling this again replaces the previous handler. ``debug`` forces the
    root level to DEBUG; library loggers stay at INFO or above either way.
    """

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(json_handler(stream))
    root.setLevel(logging.DEBUG if debug else level.upper())

    floor = max(root.level, logging.INFO)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(floor)
