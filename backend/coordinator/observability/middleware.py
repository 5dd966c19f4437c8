"""FastAPI middleware for request context."""

from __future__ import annotations

import logging
import time

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from coordinator.observability.request_context import (
    ensure_request_id,
    reset_request_id,
    set_request_id,
)

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach a request_id to each request and echo it on the response."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = ensure_request_id(request.headers.get(REQUEST_ID_HEADER))
        token = set_request_id(request_id)
        request.state.request_id = request_id

        start_time = time.perf_counter()
        status_code = 500
        try:
            span = trace.get_current_span()
            if span.is_recording():
                span.set_attribute("request.id", request_id)

            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            logger.info(
                "[Request] %s %s -> %s (%sms)",
                request.method,
                request.url.path,
                status_code,
                duration_ms,
            )
            reset_request_id(token)
