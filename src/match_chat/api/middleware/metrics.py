"""Per-request timing log for the chat API."""
from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from match_chat.api.middleware.correlation_id import current_correlation_id

logger = logging.getLogger(__name__)

QUIET_PATHS = frozenset({"/healthz", "/readyz"})
SLOW_REQUEST_MS = 500.0


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        path = request.url.path
        if path in QUIET_PATHS and response.status_code < 500:
            return response

        level = logging.WARNING if elapsed_ms >= SLOW_REQUEST_MS else logging.INFO
        logger.log(
            level,
            "%s %s %s %.1fms [%s]",
            request.method,
            path,
            response.status_code,
            elapsed_ms,
            current_correlation_id() or "-",
        )
        return response
