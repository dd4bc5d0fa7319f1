"""
Structured logging for the ledger.

Every record under the ``ledger_kernel`` logger tree is written as one JSON
object per line.  Besides the usual level/logger/message the line carries:

    - run-scoped context bound with ``LogContext.bind`` (actor, period,
      scheduler run id),
    - the ``extra={...}`` fields of the call, with money, ids and dates
      rendered as strings,
    - for ``exc_info`` records, the exception type, its ``code`` and the
      public attributes of LedgerError subclasses, prefixed ``exc_``.

Event messages are snake_case names (``fee_generated``,
``salary_mirror_sync_failed``...) so log lines can be filtered by message.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Mapping
from uuid import UUID

__all__ = [
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

LOGGER_ROOT = "ledger_kernel"

CONTEXT_FIELDS = ("actor_id", "period", "run_id")

_context: ContextVar[Mapping[str, str]] = ContextVar("ledger_log_context", default={})


class LogContext:
    """Fields stamped on every log line of the current thread or task."""

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Add fields for the duration of the block; None values are ignored.

        Raises:
            TypeError: A field outside CONTEXT_FIELDS.
        """
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {sorted(unknown)}")
        merged = dict(_context.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        token = _context.set(merged)
        try:
            yield
        finally:
            _context.reset(token)

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})


# Attributes every LogRecord has; anything else on a record came from extra=.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name != "code" and not name.startswith("_"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                line.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            line.update(_exception_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)

        return json.dumps(line, default=_jsonable)


def get_logger(name: str) -> logging.Logger:
    """Logger ``ledger_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")


_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    handler: logging.Handler | None = None,
) -> None:
    """
    Send ledger logs to ``handler`` (stderr by default) as JSON lines.

    Only the first call takes effect until ``reset_logging``; the batch
    runner and the test suite may both call it.
    """
    global _installed_handler
    if _installed_handler is not None:
        return

    _installed_handler = handler or logging.StreamHandler(sys.stderr)
    _installed_handler.setFormatter(StructuredFormatter())

    root = logging.getLogger(LOGGER_ROOT)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(_installed_handler)


def reset_logging() -> None:
    """Detach the installed handler.  For tests."""
    global _installed_handler
    root = logging.getLogger(LOGGER_ROOT)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    _installed_handler = None
