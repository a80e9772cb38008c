"""Structured JSON logging for the requisition kernel.

Every record is one JSON object per line: an envelope (``ts``, ``level``,
``logger``, ``message``), the request-scoped fields held in ``LogContext``,
the ``extra`` fields of the call and, for exceptions, the error ``code`` and
structured attributes of ``RequisitionKernelError`` subclasses.
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
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "requisition_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = (
    "correlation_id",
    "operation",
    "requisition_id",
    "actor_id",
    "gate",
)

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"requisition_log_{name}", default=None) for name in _CONTEXT_FIELDS
}


class LogContext:
    """Request-scoped log fields, safe across threads and asyncio tasks.

    The orchestrator binds one set of fields per workflow operation::

        with LogContext.bind(operation="gate_decision", requisition_id=str(rid)):
            ...
    """

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set the given fields; ``None`` values and unknown names are ignored."""
        for name, value in fields.items():
            var = _context_vars.get(name)
            if var is not None and value is not None:
                var.set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        values = {name: var.get() for name, var in _context_vars.items()}
        return {name: value for name, value in values.items() if value is not None}

    @classmethod
    def clear(cls) -> None:
        for var in _context_vars.values():
            var.set(None)

    @classmethod
    def bind(cls, **fields: str | None) -> "_BoundContext":
        """Set fields for the duration of a ``with`` block, then restore them."""
        return _BoundContext(fields)


class _BoundContext:

    def __init__(self, fields: dict[str, str | None]):
        self._fields = fields
        self._tokens: list[tuple[ContextVar[str | None], Token]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            var = _context_vars.get(name)
            if var is not None and value is not None:
                self._tokens.append((var, var.set(str(value))))
        return LogContext

    def __exit__(self, *exc_info: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


# ---------------------------------------------------------------------------
# JSON formatting
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else on a record came from ``extra``
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # Structured attributes of RequisitionKernelError subclasses
        for name, value in vars(exc).items():
            if not name.startswith("_") and name != "code":
                fields[f"exc_{name}"] = value
        return fields


# ---------------------------------------------------------------------------
# Logger factory and initialization
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``requisition_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``requisition_kernel`` logger.

    Idempotent: only the first call in a process (or since reset_logging)
    has any effect.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(handler)


def reset_logging() -> None:
    """Undo configure_logging().  Tests only."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
