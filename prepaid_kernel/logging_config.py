"""
Structured JSON logging for the prepaid ledger.

Every ledger logger lives under the ``prepaid_kernel`` namespace and writes
one JSON object per line.  Event names are snake_case messages
(``lesson_consumed``, ``refund_completed``) and the facts of the event travel
as ``extra`` fields, so a log line can be filtered by contract, location or
error code without parsing text.

Request-scoped fields (correlation id, operator, contract, location and the
running operation) are held in context variables by ``LogContext`` and
stamped onto every line written while they are bound.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

LOGGER_NAMESPACE = "prepaid_kernel"

CONTEXT_FIELDS = ("correlation_id", "actor_id", "contract_id", "location_id", "operation")

_context_vars: dict[str, ContextVar[str | None]] = {
    field: ContextVar(f"ledger_log_{field}", default=None) for field in CONTEXT_FIELDS
}


def _context_var(field: str) -> ContextVar[str | None]:
    try:
        return _context_vars[field]
    except KeyError:
        raise TypeError(f"unknown log context field: {field}") from None


class LogContext:
    """Request-scoped log fields, safe across threads and asyncio tasks."""

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set the given fields; ``None`` values leave a field as it is."""
        for field, value in fields.items():
            if value is not None:
                _context_var(field).set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        values = {field: var.get() for field, var in _context_vars.items()}
        return {field: value for field, value in values.items() if value is not None}

    @classmethod
    def clear(cls) -> None:
        for var in _context_vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Bind fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (_context_var(field), _context_var(field).set(str(value)))
            for field, value in fields.items()
            if value is not None
        ]
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord carries; anything else on a record came from extra.
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {"exc_type": type(exc).__name__, "exc_message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # LedgerError subclasses keep their structured data as public attributes.
    for name, value in vars(exc).items():
        if not name.startswith("_"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRIBUTES:
                entry.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` under the ledger namespace (``services.contract_ledger``)."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach the JSON handler to the ledger namespace; later calls are no-ops.

    The namespace does not propagate, so ledger lines are not duplicated by
    whatever the host application installs on the root logger.
    """
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

        namespace = logging.getLogger(LOGGER_NAMESPACE)
        namespace.setLevel(level)
        namespace.propagate = False
        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        namespace.addHandler(target)


def reset_logging() -> None:
    """Detach handlers and allow ``configure_logging`` to run again (tests)."""
    global _configured
    with _configure_lock:
        _configured = False
        namespace = logging.getLogger(LOGGER_NAMESPACE)
        namespace.handlers.clear()
        namespace.setLevel(logging.WARNING)
