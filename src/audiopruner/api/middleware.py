"""Request logging middleware."""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from audiopruner.api.routes import ADMIN_HEADER
from audiopruner.utils.logger import get_logger

logger = get_logger(__name__)
stdlib_logger = logging.getLogger(__name__)

_REDACTED_HEADERS = {"authorization", ADMIN_HEADER.lower()}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log API requests and their outcome."""

    async def dispatch(self, request: Request, call_next):
        """Log request before processing and response after."""
        # Health checks and docs are not worth a log line
        if not request.url.path.startswith("/api/"):
            return await call_next(request)

        start_time = time.time()

        log_data = {
            "method": request.method,
            "path": request.url.path,
            "query": str(request.url.query) or None,
            "client": request.client.host if request.client else None,
        }

        if stdlib_logger.isEnabledFor(logging.DEBUG):
            log_data["headers"] = {
                k: v for k, v in request.headers.items() if k.lower() not in _REDACTED_HEADERS
            }

        logger.info("Incoming API request", **log_data)

        response = await call_next(request)

        # For event streams this measures time to first byte, not stream length
        duration_ms = (time.time() - start_time) * 1000

        logger.info(
            "API request completed",
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        return response
