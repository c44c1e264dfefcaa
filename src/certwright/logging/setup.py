"""Structured logging configuration for certwright.

Provides JSON and text formatters, a context filter that injects the
current renewal id and identifier into every log record, and a
one-call ``configure_logging`` function driven by config settings.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import sys
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from certwright.logging.sanitize import sanitize_pem

if TYPE_CHECKING:
    from certwright.config.settings import LoggingSettings

_renewal_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "certwright_renewal_id",
    default=None,
)
_identifier: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "certwright_identifier",
    default=None,
)

# Attributes that are part of the standard LogRecord; everything
# else is considered "extra" and gets included in structured output.
_STANDARD_ATTRS = frozenset(
    {
        "args",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
        # Context attributes (handled explicitly):
        "renewal_id",
        "identifier",
    }
)


@contextlib.contextmanager
def log_context(
    *,
    renewal_id: str | None = None,
    identifier: str | None = None,
) -> Iterator[None]:
    """Attach a renewal id and/or identifier to log records in this block."""
    tokens = []
    if renewal_id is not None:
        tokens.append((_renewal_id, _renewal_id.set(renewal_id)))
    if identifier is not None:
        tokens.append((_identifier, _identifier.set(identifier)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructuredFormatter(logging.Formatter):
    """JSON-lines formatter for unattended runs.

    Every record becomes a single JSON object on one line containing
    the standard fields plus any *extra* attributes passed by the
    caller or injected by filters.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        data: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created,
                tz=UTC,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": sanitize_pem(record.message),
        }

        renewal_id = getattr(record, "renewal_id", None)
        if renewal_id is not None:
            data["renewal_id"] = renewal_id

        identifier = getattr(record, "identifier", None)
        if identifier is not None:
            data["identifier"] = identifier

        # Caller-supplied extra fields
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                data.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for console use."""

    _FMT = "%(asctime)s %(levelname)-8s [%(renewal_id)s] %(name)s: %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self._FMT, datefmt="%Y-%m-%d %H:%M:%S")


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class LogContextFilter(logging.Filter):
    """Inject the active :func:`log_context` values into every record.

    Falls back to ``"-"`` for the renewal id and ``None`` for the
    identifier outside of any context.
    """

    CONTEXT_ATTRS = frozenset({"renewal_id", "identifier"})

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "renewal_id"):
            record.renewal_id = _renewal_id.get() or "-"  # type: ignore[attr-defined]
        if not hasattr(record, "identifier"):
            record.identifier = _identifier.get()  # type: ignore[attr-defined]
        return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Configure the ``certwright`` logger hierarchy from settings.

    Replaces any bootstrap handlers with properly formatted output
    and applies per-logger level overrides.

    Returns the root ``certwright`` logger.
    """
    level = getattr(logging, settings.level.upper(), logging.INFO)

    root = logging.getLogger("certwright")
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    formatter: logging.Formatter
    formatter = StructuredFormatter() if settings.format == "json" else TextFormatter()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.addFilter(LogContextFilter())
    root.addHandler(console)

    for name, name_level in settings.loggers.items():
        logging.getLogger(name).setLevel(getattr(logging, name_level.upper(), level))

    # Quieten noisy third-party loggers
    for lib in ("werkzeug", "urllib3"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return root
