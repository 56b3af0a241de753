"""
Structured JSON logging for the chart-of-accounts kernel.

Kernel modules log event-style messages with an ``extra`` payload::

    logger.info("account_created", extra={"account_id": account.id, "code": "1000"})

StructuredFormatter renders each record as one JSON line: a fixed
envelope, the tenant fields bound through LogContext, then the payload.
ChartOfAccountsAPI binds ``company_id`` and ``account_id`` around every
operation, so service-level records carry the tenant without passing it
down explicitly.
"""

__all__ = [
    "ROOT_LOGGER",
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
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

from coa_kernel.exceptions import CoaKernelError

ROOT_LOGGER = "coa_kernel"

_NO_FIELDS: Mapping[str, str] = MappingProxyType({})
_bound: ContextVar[Mapping[str, str]] = ContextVar("coa_log_fields", default=_NO_FIELDS)


class LogContext:
    """Tenant fields attached to every record emitted inside ``bind``."""

    FIELDS = ("company_id", "account_id")

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """
        Bind ``fields`` for the duration of the block.

        None values are skipped, so ``bind(account_id=None)`` keeps an
        outer account binding.  Values are stored as strings.  The outer
        binding is restored on exit, also when the block raises.
        """
        unknown = sorted(set(fields) - set(cls.FIELDS))
        if unknown:
            raise ValueError(f"Unknown log context field(s): {', '.join(unknown)}")
        merged = dict(_bound.get())
        merged.update({key: str(value) for key, value in fields.items() if value is not None})
        token = _bound.set(MappingProxyType(merged))
        try:
            yield
        finally:
            _bound.reset(token)

    @classmethod
    def current(cls) -> dict[str, str]:
        return dict(_bound.get())

    @classmethod
    def clear(cls) -> None:
        _bound.set(_NO_FIELDS)


# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return repr(value)


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per record.

    Key order: ``ts``, ``level``, ``logger``, ``message``, bound context,
    then ``extra``.  A bound field wins over an ``extra`` key of the same
    name.  A logged CoaKernelError adds ``error_code`` and
    ``error_details``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.current(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if isinstance(exc, CoaKernelError):
                payload["error_code"] = exc.code
                payload["error_details"] = exc.details()
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Logger ``coa_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``coa_kernel`` logger.  Later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True
        kernel_logger = logging.getLogger(ROOT_LOGGER)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False
        target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        kernel_logger.addHandler(target)


def reset_logging() -> None:
    """Detach kernel handlers and restore default propagation (used by tests)."""
    global _configured
    with _lock:
        _configured = False
        kernel_logger = logging.getLogger(ROOT_LOGGER)
        kernel_logger.handlers.clear()
        kernel_logger.setLevel(logging.NOTSET)
        kernel_logger.propagate = True
