"""Request correlation and access logging for the console API.

``RequestIdMiddleware`` must be the outermost layer so every log line of a
request, including the access line, carries the same id.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import get_logger, request_id_ctx
from .metrics import HTTP_REQUESTS_TOTAL

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9\-]{8,128}$")

# Permission denials are worth seeing without DEBUG.
_DENIAL_STATUSES = frozenset({401, 403})


def _caller(request: Request) -> str | None:
    identity = getattr(request.state, "auth_identity", None)
    user_id = getattr(identity, "user_id", None)
    return user_id or request.headers.get("x-user-id") or None


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Accept a well-formed incoming request id or mint one, and echo it back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        rid = incoming if _VALID_REQUEST_ID.match(incoming) else uuid.uuid4().hex

        request.state.request_id = rid
        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        response.headers[REQUEST_ID_HEADER] = rid
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        status = response.status_code
        HTTP_REQUESTS_TOTAL.labels(method=request.method, status=str(status)).inc()

        log = logger.warning if status in _DENIAL_STATUSES else logger.info
        log(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=status,
            user_id=_caller(request),
            duration_ms=elapsed_ms,
        )
        return response
