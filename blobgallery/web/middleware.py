"""
Correlation ID Middleware

Extracts or generates a request ID and binds it to the logging context.
"""

import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.logging_config import correlation_scope

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Tag each request with a request ID, log it, and echo the ID back."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        with correlation_scope(request_id):
            start_time = time.time()
            response: Response = await call_next(request)
            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                f"{request.method} {request.url.path} - {response.status_code} "
                f"({duration_ms:.2f} ms)"
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
