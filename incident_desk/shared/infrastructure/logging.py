"""
Structured Logging
==================

One JSON object per log line, via python-json-logger.

Every record carries the environment and, while an HTTP request is being
served, the request's correlation id, so that a ticket transition can be
traced back to the inbound event that caused it.

Usage:
    from incident_desk.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Ticket confirmed", extra={"ticket_id": 42, "team": "it"})
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from pythonjsonlogger import jsonlogger

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_REDACTED = "***REDACTED***"
_SENSITIVE_KEYS = ("password", "secret", "token", "api_key", "webhook_url")

_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "apscheduler", "watchdog", "httpx")


def bind_correlation_id(correlation_id: Optional[str]):
    """Attach a correlation id to the current context. Returns the reset token."""
    return _correlation_id.set(correlation_id)


def reset_correlation_id(token) -> None:
    _correlation_id.reset(token)


def current_correlation_id() -> Optional[str]:
    return _correlation_id.get()


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    Adds ``timestamp`` (UTC ISO-8601), ``environment`` and ``correlation_id``,
    and masks values whose key looks like a credential.
    """

    def __init__(self, *args, environment: str = "unknown", **kwargs):
        super().__init__(*args, **kwargs)
        self.environment = environment

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        log_record["environment"] = self.environment

        correlation_id = getattr(record, "correlation_id", None) or current_correlation_id()
        if correlation_id:
            log_record["correlation_id"] = correlation_id

        for key, value in log_record.items():
            if isinstance(value, str) and any(s in key.lower() for s in _SENSITIVE_KEYS):
                log_record[key] = _REDACTED


def setup_logging(level: str = "INFO", environment: str = "development") -> None:
    """
    Install the JSON handler on the root logger, replacing any handler
    configured before (uvicorn's default one included).
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        environment=environment,
    ))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **extra_context: Any):
    """
    Log how long the wrapped block took, at DEBUG level.

        with log_latency(logger, "record_confirmation", ticket_id=42):
            await session.execute(stmt)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.debug(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                **extra_context,
            },
        )
