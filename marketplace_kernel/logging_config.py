"""
Structured JSON logging for the marketplace kernel.

Responsibility:
    One JSON object per log line.  Every line carries the envelope (ts,
    level, logger, message), the fields bound in ``LogContext`` for the
    current call, the record's ``extra`` fields, and, for exceptions, the
    error's code and structured attributes.

Architecture position:
    Kernel > infrastructure.  Imported by every layer; imports nothing
    from the kernel.

Invariants:
    - Only the names in ``CONTEXT_FIELDS`` can be bound.
    - ``configure_logging`` installs at most one handler until
      ``reset_logging`` is called.
"""

__all__ = [
    "CONTEXT_FIELDS",
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, TextIO
from uuid import UUID

ROOT_LOGGER_NAME = "marketplace_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "offer_id",
    "agreement_id",
    "associate_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_bound: ContextVar[Mapping[str, str]] = ContextVar("marketplace_log_context", default=_EMPTY)


class LogContext:
    """
    Per-call log fields held in a single context variable.

    The mapping is replaced, never mutated, so threads and tasks each see
    their own copy.
    """

    @staticmethod
    def _merged(fields: dict[str, Any]) -> Mapping[str, str]:
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown log context fields: {sorted(unknown)}")
        merged = dict(_bound.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return MappingProxyType(merged)

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set fields for the rest of the current context; None values are ignored."""
        _bound.set(cls._merged(fields))

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[Mapping[str, str]]:
        """Bind fields for the duration of a ``with`` block."""
        token = _bound.set(cls._merged(fields))
        try:
            yield _bound.get()
        finally:
            _bound.reset(token)

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_bound.get())

    @staticmethod
    def clear() -> None:
        _bound.set(_EMPTY)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
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
    # MarketplaceError subclasses keep their details as public attributes.
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                line.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            line.update(_exception_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)

        return json.dumps(line, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger named ``marketplace_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_setup_lock = threading.Lock()
_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``marketplace_kernel`` logger.

    Later calls are no-ops until ``reset_logging``; the first caller's
    level and destination win.
    """
    global _handler
    with _setup_lock:
        if _handler is not None:
            return
        _handler = handler or logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(StructuredFormatter())

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(_handler)


def reset_logging() -> None:
    """Detach the handler so the next ``configure_logging`` applies. Tests only."""
    global _handler
    with _setup_lock:
        root = logging.getLogger(ROOT_LOGGER_NAME)
        if _handler is not None:
            root.removeHandler(_handler)
            _handler = None
        root.setLevel(logging.WARNING)
