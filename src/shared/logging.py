"""Structured logging with request_id support."""
from __future__ import annotations

import contextvars
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from src.shared.config import LogFormat, ServiceConfig
from src.shared.constants import REQUEST_ID_HEADER

# Context variable for request_id
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default=""
)

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(self, service_name: str = "unknown", add_source: bool = False) -> None:
        super().__init__()
        self.service_name = service_name
        self.add_source = add_source

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service_name": self.service_name,
            "request_id": request_id_var.get(""),
            "message": record.getMessage(),
        }
        log_entry.update(_extra_fields(record))
        if self.add_source:
            log_entry["source"] = f"{record.pathname}:{record.lineno}"
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry, default=str)


class PlainFormatter(logging.Formatter):
    """``time LEVEL message key=value ...`` lines."""

    def __init__(self, add_source: bool = False) -> None:
        super().__init__()
        self.add_source = add_source

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            datetime.now(timezone.utc).isoformat(),
            record.levelname,
            record.getMessage(),
        ]
        fields = _extra_fields(record)
        request_id = request_id_var.get("")
        if request_id:
            fields.setdefault("request_id", request_id)
        if self.add_source:
            fields["source"] = f"{record.pathname}:{record.lineno}"
        parts.extend(f"{key}={_plain_value(value)}" for key, value in fields.items())
        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _plain_value(value: Any) -> str:
    text = str(value)
    if not text or any(ch.isspace() or ch in '"=' for ch in text):
        return json.dumps(text)
    return text


def setup_logging(config: ServiceConfig) -> logging.Logger:
    """Configure process logging from the service configuration.

    Records go to standard output. The handler is installed on the root
    logger, replacing any existing ones, so module loggers and library
    loggers share the single configuration point.

    Args:
        config: Service configuration supplying format, level and verbosity.

    Returns:
        The service logger, meant to be passed to components explicitly.
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    add_source = config.log_verbose and config.app_debug

    formatter: logging.Formatter
    if config.log_format is LogFormat.JSON:
        formatter = JSONFormatter(service_name=config.service_name, add_source=add_source)
    else:
        formatter = PlainFormatter(add_source=add_source)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    # Remove existing handlers
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    logger = logging.getLogger(config.service_name)
    logger.setLevel(level)
    return logger


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a request id, honouring one supplied by the client."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
