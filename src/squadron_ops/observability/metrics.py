"""Prometheus metrics for permission decisions.

Every public permission check records its outcome so operators can tell a
wave of fail-closed denials (``lookup_failed``) apart from ordinary
``insufficient_permissions`` results, even though callers only ever see a
boolean.

Usage::

    from squadron_ops.observability.metrics import PERMISSION_CHECKS_TOTAL

    PERMISSION_CHECKS_TOTAL.labels(permission="manage_roster", reason="granted").inc()
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

PERMISSION_CHECKS_TOTAL = Counter(
    "squadron_ops_permission_checks_total",
    "Permission checks by permission name and decision reason.",
    labelnames=["permission", "reason"],
    registry=REGISTRY,
)

PERMISSION_SET_LOADS_TOTAL = Counter(
    "squadron_ops_permission_set_loads_total",
    "Permission-set loads from the grant source, by outcome.",
    labelnames=["outcome"],
    registry=REGISTRY,
)

PERMISSION_SET_LOAD_SECONDS = Histogram(
    "squadron_ops_permission_set_load_seconds",
    "Latency of loading one user's permission set from the grant source.",
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=REGISTRY,
)

HTTP_REQUESTS_TOTAL = Counter(
    "squadron_ops_http_requests_total",
    "HTTP requests by method and status code.",
    labelnames=["method", "status"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Return the exposition payload and its content type."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
