"""
Request logging middleware.

Binds a request_id to every log event emitted while a request is handled.
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from sandbox_runner.infrastructure.logging import bound_context, get_logger

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Adds request context to logs and ``X-Request-ID`` to responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        with bound_context(request_id=request_id, method=request.method, path=request.url.path):
            logger.debug(
                "Request started",
                client=request.client.host if request.client else None,
            )
            start_time = time.time()
            try:
                response = await call_next(request)
            except Exception as e:
                logger.exception(
                    "Request failed",
                    error=str(e),
                    process_time=f"{time.time() - start_time:.3f}s",
                )
                raise

            process_time = time.time() - start_time
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{process_time:.3f}"
            logger.info(
                "Request completed",
                status_code=response.status_code,
                process_time=f"{process_time:.3f}s",
            )
            return response
