"""Structured JSON audit logging for the LLM routing service.

Every line is a JSON object on stdout (plus AUDIT_LOG_FILE when set).
Provider calls, fallback outcomes and health transitions share one
logger, and each line carries the request and tenant it belongs to, so
one aggregator query follows a tenant's traffic end to end, including
work done by its background loops.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

from messageflow.config.settings import get_settings

LOGGER_NAME = "messageflow.audit"

# Correlation context; background tasks get their own copy
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
tenant_id_var: ContextVar[int | None] = ContextVar("tenant_id", default=None)


def bind_context(tenant_id: int | None = None, request_id: str | None = None) -> None:
    """Tag every later log line in the current context."""
    if tenant_id is not None:
        tenant_id_var.set(tenant_id)
    if request_id is not None:
        request_id_var.set(request_id)


class JSONFormatter(logging.Formatter):
    """One JSON object per record: base fields, context, then `audit_data`."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(""),
        }
        tenant_id = tenant_id_var.get(None)
        if tenant_id is not None:
            entry["tenant_id"] = tenant_id
        entry.update(getattr(record, "audit_data", {}))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _handler(handler: logging.Handler) -> logging.Handler:
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging() -> None:
    """Attach JSON handlers to the audit logger. Safe to call repeatedly."""
    settings = get_settings()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.handlers.clear()
    logger.addHandler(_handler(logging.StreamHandler(sys.stdout)))
    if settings.audit_log_file:
        logger.addHandler(_handler(logging.FileHandler(settings.audit_log_file)))

    # Keep lines out of the root logger
    logger.propagate = False


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


class RequestTimer:
    """Context manager measuring wall-clock latency in milliseconds."""

    def __init__(self):
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = round((time.perf_counter() - self.start_time) * 1000, 2)
