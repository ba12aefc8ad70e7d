"""
Shared API Middleware
=====================

Request tracing, access logging and the exception handlers that turn the
application exception hierarchy into JSON error responses.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from incident_desk.core import ApplicationException
from incident_desk.shared.infrastructure.logging import (
    bind_correlation_id,
    get_logger,
    reset_correlation_id,
)

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with a correlation id.

    The caller's X-Correlation-ID is reused when present. The id is echoed
    in the response and bound to the logging context for the duration of
    the request.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        token = bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            reset_correlation_id(token)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request, plus an X-Response-Time header."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.perf_counter()
        context = {
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else None,
        }

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={**context, "error": str(e), "response_time_ms": int((time.perf_counter() - start) * 1000)}
            )
            raise

        elapsed = time.perf_counter() - start
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"
        logger.info(
            "Request completed",
            extra={**context, "status_code": response.status_code, "response_time_ms": int(elapsed * 1000)}
        )
        return response


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Answer with the status carried by the exception class.

    404 not found, 403 permission denied, 409 ticket not pending,
    422 invalid input, 502 chat gateway, 503 ticket store.
    """
    correlation_id = _correlation_id(request)

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Request rejected",
        extra={
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
            "status_code": exc.status_code,
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "error_type": type(exc).__name__,
            "details": exc.details,
            "correlation_id": correlation_id,
        }
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: 500 with the correlation id, error text only in development."""
    correlation_id = _correlation_id(request)

    logger.exception(
        "Unhandled exception",
        extra={"path": request.url.path, "error_type": type(exc).__name__}
    )

    settings = getattr(request.app.state, "settings", None)
    is_dev = getattr(settings, "environment", None) == "development"

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None,
        }
    )
