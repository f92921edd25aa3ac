"""
RequestContext Middleware - Adds request tracking to all requests.

Every request gets a request_id that is:
- stored on request.state.request_id
- bound into structlog contextvars so every log line of the request carries it
- returned to the client in the X-Request-ID header

An incoming X-Request-ID header is reused so traces can span the cron
caller and this service.
"""

import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_REQUEST_ID_LENGTH = 64


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id to request.state and to the logging context."""

    async def dispatch(self, request: Request, call_next):
        request_id = self._incoming_request_id(request) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.debug("Request started", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    def _incoming_request_id(self, request: Request) -> str | None:
        value = request.headers.get(REQUEST_ID_HEADER)
        if not value:
            return None
        value = value.strip()
        if not value or len(value) > _MAX_REQUEST_ID_LENGTH:
            return None
        return value
