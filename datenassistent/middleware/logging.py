"""
Logging Middleware

Binds request-scoped log context and logs each request once on completion.
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from datenassistent.core.logging import clear_log_context, log_context, logger
from datenassistent.core.utils import generate_short_id


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Log request and response details.

        Every log line emitted while handling the request (including audit
        events) carries request_id, method and path.
        """
        request_id = request.headers.get("X-Request-ID", generate_short_id("req"))

        log_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            duration_ms = int((time.perf_counter() - start_time) * 1000)

            logger.info(
                "Request completed",
                status_code=response.status_code,
                duration_ms=duration_ms,
            )
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            duration_ms = int((time.perf_counter() - start_time) * 1000)
            logger.error(
                "Request failed",
                error=str(e),
                duration_ms=duration_ms,
            )
            raise

        finally:
            clear_log_context()
