"""
Structured JSON logging for the tax kernel.

Every record leaves the ``tax_kernel`` logger tree as one JSON object per
line. Fields bound through ``LogContext`` (filer GSTIN, return period,
correlation id of the document being processed) are merged into every
record emitted while they are bound, so a single invoice can be followed
through the reverse-charge, GST, ITC and classification engines.

Usage:
    from tax_kernel.logging_config import LogContext, get_logger

    logger = get_logger("engines.gst")
    with LogContext.bind(correlation_id="INV-042"):
        logger.info("gst_calculated", extra={"total_tax": "180.00"})
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
from enum import Enum
from typing import Any

ROOT_LOGGER_NAME = "tax_kernel"

_CONTEXT_FIELDS: dict[str, ContextVar[str | None]] = {
    field: ContextVar(f"tax_log_{field}", default=None)
    for field in ("correlation_id", "filer_gstin", "return_period", "batch_id", "trace_id")
}


class LogContext:
    """Per-task log fields backed by context variables."""

    @staticmethod
    def set(**fields: str | None) -> None:
        """Bind fields for the rest of the current context. None leaves a field as is."""
        _check_fields(fields)
        for field, value in fields.items():
            if value is not None:
                _CONTEXT_FIELDS[field].set(value)

    @staticmethod
    def get(name: str) -> str | None:
        var = _CONTEXT_FIELDS.get(name)
        return var.get() if var is not None else None

    @staticmethod
    def get_all() -> dict[str, str]:
        bound = {}
        for field, var in _CONTEXT_FIELDS.items():
            value = var.get()
            if value is not None:
                bound[field] = value
        return bound

    @staticmethod
    def clear() -> None:
        for var in _CONTEXT_FIELDS.values():
            var.set(None)

    @staticmethod
    def bind(**fields: str | None):
        """
        Bind fields for the duration of a ``with`` block.

        Previous values are restored on exit, including when the block
        raises. Unknown field names raise KeyError before anything is bound.
        """
        _check_fields(fields)
        return _scoped(fields)


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = sorted(set(fields) - set(_CONTEXT_FIELDS))
    if unknown:
        raise KeyError(f"Unknown log context fields: {unknown}")


@contextmanager
def _scoped(fields: dict[str, str | None]) -> Iterator[type[LogContext]]:
    tokens = [
        (_CONTEXT_FIELDS[field], _CONTEXT_FIELDS[field].set(value))
        for field, value in fields.items()
        if value is not None
    ]
    try:
        yield LogContext
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    # Decimal, UUID and anything else without a JSON form
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # TaxKernelError subclasses keep their context as public attributes
    for name, value in vars(exc).items():
        if name != "code" and not name.startswith("_"):
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
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and key not in entry
        )
        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` under the tax_kernel tree, e.g. ``engines.tds``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_setup_lock = threading.Lock()
_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the tax_kernel tree. Later calls are no-ops."""
    global _handler
    with _setup_lock:
        if _handler is not None:
            return
        _handler = handler or logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(StructuredFormatter())

        tree = logging.getLogger(ROOT_LOGGER_NAME)
        tree.setLevel(level)
        tree.propagate = False
        tree.addHandler(_handler)


def reset_logging() -> None:
    """Detach the handler so tests can configure again."""
    global _handler
    with _setup_lock:
        tree = logging.getLogger(ROOT_LOGGER_NAME)
        tree.handlers.clear()
        tree.setLevel(logging.WARNING)
        tree.propagate = True
        _handler = None
