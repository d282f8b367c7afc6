"""JSON-line logging for the gate.

Every record is stamped with the id of the request being handled, so the
fetch/probe lines a gated request triggers can be correlated with its
request.start/request.end pair. Credential-bearing extras are masked in the
formatter; call sites may pass them pre-truncated, raw values never leave it.
"""
from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from logging import LogRecord
from typing import Any

from .domain.tokens import truncate_token

__all__ = [
    "JsonFormatter",
    "bind_request_id",
    "reset_request_id",
    "setup_logging",
    "get_logger",
]

# Extras that may carry a credential.
SECRET_FIELDS = frozenset({"token", "api_key", "access_code", "authorization"})

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)

_RECORD_ATTRS = frozenset(vars(LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def bind_request_id(request_id: str) -> Token[str | None]:
    return _request_id.set(request_id)


def reset_request_id(token: Token[str | None]) -> None:
    _request_id.reset(token)


def _mask(value: Any) -> Any:
    if not isinstance(value, str) or not value:
        return value
    if "..." in value:  # already truncated by the caller
        return value
    return truncate_token(value)


class JsonFormatter(logging.Formatter):
    def format(self, record: LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = _request_id.get()
        if request_id is not None:
            payload["request_id"] = request_id

        for key, value in vars(record).items():
            if key in _RECORD_ATTRS or key in payload:
                continue
            payload[key] = _mask(value) if key in SECRET_FIELDS else value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str | int = "INFO") -> None:
    """Attach the JSON handler to the root logger once; later calls only adjust the level.

    uvicorn's own handlers are dropped so its lines go through the same formatter.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    if any(isinstance(h.formatter, JsonFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.propagate = True


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name if name else __name__)
