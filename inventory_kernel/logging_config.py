"""
Structured logging for the inventory kernel.

Every record leaves the ``inventory_kernel`` logger tree as one JSON
object per line.  Request-scoped identifiers (correlation, actor, product,
reservation, order, batch) live in a context variable and are stamped onto
each record, so a reservation can be traced from request to ledger row
without threading ids through every call.

Usage:
    from inventory_kernel.logging_config import LogContext, get_logger

    logger = get_logger("services.reservation_manager")

    with LogContext.bind(product_id=sku, order_id=order):
        logger.info("stock_reserved", extra={"quantity": 3})
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, TextIO
from uuid import UUID

_ROOT = "inventory_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "product_id",
    "reservation_id",
    "order_id",
    "batch_id",
)

_context: ContextVar[Mapping[str, str]] = ContextVar("inventory_log_context", default={})


def _merge(current: Mapping[str, str], updates: Mapping[str, Any]) -> dict[str, str]:
    merged = dict(current)
    for name, value in updates.items():
        if name not in CONTEXT_FIELDS:
            raise TypeError(f"Unknown log context field: {name}")
        if value is not None:
            merged[name] = str(value)
    return merged


class LogContext:
    """
    Request-scoped fields attached to every log line.

    Backed by a single ContextVar holding an immutable snapshot, so threads
    and asyncio tasks each see their own values.  ``None`` never overwrites
    an existing field.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        _context.set(_merge(_context.get(), fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """Overlay ``fields`` for the duration of the block, then restore."""
        token = _context.set(_merge(_context.get(), fields))
        try:
            yield LogContext
        finally:
            _context.reset(token)


# Attribute names every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # InventoryKernelError subclasses keep their context as public attributes.
    fields.update(
        (f"exc_{name}", value)
        for name, value in vars(exc).items()
        if not name.startswith("_") and name not in ("args", "code")
    )
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in record.__dict__.items():
            if name not in _RECORD_ATTRS:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Return ``inventory_kernel.<name>``."""
    return logging.getLogger(f"{_ROOT}.{name}")


_setup_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``inventory_kernel`` logger.

    Only the first call has any effect until reset_logging() runs.  The
    tree does not propagate to the root logger, so host applications keep
    their own formatting.
    """
    global _installed_handler
    with _setup_lock:
        if _installed_handler is not None:
            return
        target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        logger = logging.getLogger(_ROOT)
        logger.setLevel(level)
        logger.propagate = False
        logger.addHandler(target)
        _installed_handler = target


def reset_logging() -> None:
    """Detach the installed handler so tests can reconfigure."""
    global _installed_handler
    with _setup_lock:
        logger = logging.getLogger(_ROOT)
        logger.handlers.clear()
        logger.setLevel(logging.WARNING)
        _installed_handler = None
