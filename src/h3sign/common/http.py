"""Per-request log context for the verifying server."""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from h3sign.common.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def bind_key_id(key_id: str) -> None:
    """Attach the verified key id to every log line of the current request."""
    structlog.contextvars.bind_contextvars(key_id=key_id)


def _verified_key_id(request: Request) -> str | None:
    auth = getattr(request.state, "auth", None)
    return getattr(auth, "key_id", None)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Bind a request id, method and path into the structlog context.

    The id is taken from ``X-Request-ID`` when the caller sent one and is
    echoed back on the response. One access line is logged per request,
    carrying the key id the HMAC middleware verified (None when the path
    is exempt or the signature was rejected).
    """

    def __init__(self, app: ASGIApp, header_name: str = REQUEST_ID_HEADER) -> None:
        super().__init__(app)
        self._header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self._header_name) or uuid.uuid4().hex
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[self._header_name] = request_id
            logger.info(
                "Request served",
                status=response.status_code,
                key_id=_verified_key_id(request),
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            return response
        finally:
            structlog.contextvars.clear_contextvars()
