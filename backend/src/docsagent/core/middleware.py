"""
Custom middleware for the Docs Agent backend.

Request tracking and timing for every inbound HTTP request.
"""

import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


class RequestCounter:
    """Process-wide count of handled HTTP requests, exposed on /metrics."""

    def __init__(self) -> None:
        self.total = 0

    def increment(self) -> int:
        self.total += 1
        return self.total


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to add unique request IDs to all requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        return response


class TimingMiddleware(BaseHTTPMiddleware):
    """Times each request, counts it and logs one line per request."""

    def __init__(self, app, counter: RequestCounter | None = None):
        super().__init__(app)
        self.counter = counter

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        if self.counter is not None:
            self.counter.increment()

        response = await call_next(request)

        duration = time.time() - start_time
        response.headers["X-Response-Time"] = f"{duration:.3f}s"

        logger.info(
            "Request processed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
                "request_id": getattr(request.state, "request_id", "unknown"),
            },
        )

        return response
