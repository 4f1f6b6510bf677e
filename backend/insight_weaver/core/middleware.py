"""
Request middleware: correlation ids and request timing.
"""
import uuid
import logging
import time
from contextlib import contextmanager
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from fastapi import status
from fastapi.responses import JSONResponse
from insight_weaver.core.errors import ErrorCodes, get_error_response
from insight_weaver.core.logging import correlation_id_var, install_correlation_factory
from insight_weaver.core.performance import PerformanceMonitor

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


@contextmanager
def correlation_scope(correlation_id: str):
    """Stamp every log record created inside the block with `correlation_id`."""
    install_correlation_factory()
    token = correlation_id_var.set(correlation_id)
    try:
        yield
    finally:
        correlation_id_var.reset(token)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Attach a correlation id to each request, its logs and its response."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        with correlation_scope(correlation_id):
            start_time = time.time()
            logger.info(
                f"Request started: {request.method} {request.url.path}",
                extra={"method": request.method, "path": request.url.path}
            )

            try:
                response = await call_next(request)
            except Exception as e:
                duration = time.time() - start_time
                logger.error(
                    f"Request failed: {request.method} {request.url.path} - {e} ({duration:.3f}s)",
                    extra={"method": request.method, "path": request.url.path, "duration": duration},
                    exc_info=True
                )
                error_info = get_error_response(ErrorCodes.UNKNOWN_ERROR)
                error_info["correlation_id"] = correlation_id
                return JSONResponse(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    content=error_info,
                    headers={CORRELATION_HEADER: correlation_id}
                )

            duration = time.time() - start_time
            response.headers[CORRELATION_HEADER] = correlation_id
            response.headers["X-Response-Time"] = f"{duration:.3f}"

            PerformanceMonitor.record_metric(
                "request_duration",
                duration,
                {
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code
                }
            )
            logger.info(
                f"Request completed: {request.method} {request.url.path} - {response.status_code} ({duration:.3f}s)",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration": duration
                }
            )
            return response
