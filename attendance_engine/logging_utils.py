from __future__ import annotations

import json
import logging
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any


# Attributes every LogRecord carries; anything else on the record came from ``extra=`` or the bound context.
_RESERVED_LOG_RECORD_FIELDS = set(logging.makeLogRecord({}).__dict__) | {"message", "taskName"}

_log_context: ContextVar[dict[str, Any]] = ContextVar("attendance_engine_log_context", default={})


def bind_log_context(**fields: Any) -> Token[dict[str, Any]]:
    """Attach ``request_id``, ``company_id`` or ``user_id`` to every record logged in this context."""
    bound = {key: value for key, value in fields.items() if value is not None}
    return _log_context.set({**_log_context.get(), **bound})


def reset_log_context(token: Token[dict[str, Any]]) -> None:
    _log_context.reset(token)


def current_log_context() -> dict[str, Any]:
    return dict(_log_context.get())


class LogContextFilter(logging.Filter):
    """Copies the bound context onto records; explicit ``extra=`` values win."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if key not in record.__dict__:
                setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_RECORD_FIELDS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        # Leave types and checkpoint labels are Chinese; keep them readable.
        return json.dumps(payload, default=str, ensure_ascii=False)


def setup_json_logging(level: int = logging.INFO) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(LogContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
