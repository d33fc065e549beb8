"""
Request Logging Middleware
Tags every request with an ID and logs its outcome.
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .timing import request_area

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Assigns a request ID (from X-Request-ID or a new one), exposes it as
    `request.state.request_id` and echoes it back in the response.

    Health checks are logged at DEBUG so probes do not flood the log.
    Client errors (4xx) are logged at INFO with the rejected path, server
    errors at ERROR.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        area = request_area(request.url.path)
        level = logging.DEBUG if area == "health" else logging.INFO
        context = {"request_id": request_id, "area": area, "method": request.method}
        started = time.perf_counter()

        logger.log(level, f"{request.method} {request.url.path}", extra=context)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"{request.method} {request.url.path} raised {e.__class__.__name__}",
                exc_info=True,
                extra={**context, "duration_ms": (time.perf_counter() - started) * 1000},
            )
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = max(level, logging.INFO)

        logger.log(
            level,
            f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.1f}ms)",
            extra={**context, "status_code": response.status_code, "duration_ms": duration_ms},
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
