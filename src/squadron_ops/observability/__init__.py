"""Observability for the squadron ops console.

Structured logging, Prometheus counters for permission decisions, and
request-ID correlation middleware.

Quick start::

    from squadron_ops.observability import configure_logging, get_logger
    from squadron_ops.observability.middleware import RequestIdMiddleware

    configure_logging()
    app.add_middleware(RequestIdMiddleware)
"""

from .logging import configure_logging, get_logger, request_id_ctx
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "request_id_ctx",
]
