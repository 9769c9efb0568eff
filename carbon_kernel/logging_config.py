"""JSON-line logging for the gateway, with request-scoped context fields."""

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
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------


class LogContext:
    """Context-variable holder for fields stamped onto every log line."""

    _FIELD_NAMES = (
        "correlation_id",
        "tenant_id",
        "actor_id",
        "channel",
        "record_id",
        "trace_id",
    )

    _vars: dict[str, ContextVar[str | None]] = {
        name: ContextVar(f"carbon_log_{name}", default=None)
        for name in _FIELD_NAMES
    }

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set context fields. ``None`` values leave the field untouched."""
        for name, value in fields.items():
            var = cls._vars.get(name)
            if var is None:
                raise KeyError(f"Unknown log context field: {name}")
            if value is not None:
                var.set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            name: var.get()
            for name, var in cls._vars.items()
            if var.get() is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """Set fields for the duration of a ``with`` block."""
        return _BoundContext(fields)


class _BoundContext:
    def __init__(self, fields: dict[str, Any]):
        self._fields = fields
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            var = LogContext._vars.get(name)
            if var is not None and value is not None:
                self._tokens.append((var, var.set(str(value))))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(str(v) for v in obj)
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            for k, v in vars(exc).items():
                if not k.startswith("_") and k not in ("args", "code", "outcome"):
                    payload[f"exc_{k}"] = v
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory and setup
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "carbon_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``carbon_kernel`` hierarchy."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the gateway logger tree. Idempotent."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root.addHandler(h)


def reset_logging() -> None:
    """Drop handlers and the configured flag. Tests only."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
