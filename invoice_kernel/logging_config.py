"""
Structured JSON logging for the invoice kernel.

Responsibility:
    One logger namespace (``invoice_kernel.*``), one JSON line per record,
    and job-scoped context (shop, job, order, invoice number, worker) that
    is attached to every record emitted while it is bound.

Architecture position:
    Kernel leaf.  Imports nothing from the project; every other package
    obtains loggers through ``get_logger``.

Failure modes:
    Values the JSON encoder does not know are rendered with ``str()``;
    formatting never raises for an unserializable ``extra`` value.
"""

from __future__ import annotations

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
from collections.abc import Mapping
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

NAMESPACE = "invoice_kernel"

_CONTEXT_FIELDS = (
    "correlation_id",
    "shop",
    "job_id",
    "order_id",
    "invoice_number",
    "worker_id",
)

_context: ContextVar[Mapping[str, str]] = ContextVar("invoice_log_context", default={})


def _cleaned(values: Mapping[str, Any]) -> dict[str, str]:
    return {
        name: str(value)
        for name, value in values.items()
        if name in _CONTEXT_FIELDS and value is not None
    }


class LogContext:
    """
    Context fields carried by every log record in the current thread or task.

    Contract:
        ``bind(**fields)`` is the normal entry point: a context manager that
        layers fields over the current ones and restores them on exit.
        ``set`` and ``clear`` exist for worker loops and tests.

    Guarantees:
        - None values never overwrite an existing field.
        - Names outside the known field set are ignored.
    """

    @classmethod
    def set(cls, **fields: str | None) -> None:
        _context.set({**_context.get(), **_cleaned(fields)})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    def bind(cls, **fields: str | None) -> _BoundContext:
        return _BoundContext(fields)


class _BoundContext:
    def __init__(self, fields: Mapping[str, Any]):
        self._fields = _cleaned(fields)
        self._token: Token | None = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set({**_context.get(), **self._fields})
        return LogContext

    def __exit__(self, *exc_info: Any) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

# attributes every LogRecord has; anything else arrived through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
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
    # public attributes of kernel errors (order_id, shop, errors, ...)
    for name, value in vars(exc).items():
        if name.startswith("_") or name == "code":
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: base fields, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                entry.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger ``invoice_kernel.<name>``."""
    return logging.getLogger(f"{NAMESPACE}.{name}")


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_setup_lock = threading.Lock()
_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the namespace logger.  Later calls are no-ops."""
    global _handler
    with _setup_lock:
        if _handler is not None:
            return
        _handler = handler or logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(StructuredFormatter())

        namespace = logging.getLogger(NAMESPACE)
        namespace.setLevel(level)
        namespace.propagate = False
        namespace.addHandler(_handler)


def reset_logging() -> None:
    """Remove every handler from the namespace logger (test helper)."""
    global _handler
    with _setup_lock:
        _handler = None
        namespace = logging.getLogger(NAMESPACE)
        namespace.handlers.clear()
        namespace.setLevel(logging.WARNING)
