"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "stc_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

SYNC_ITEMS = Counter(
    "stc_sync_items_total",
    "Items applied by reconciliation",
    labelnames=("action",),
    registry=REGISTRY,
)

FETCH_FAILURES = Counter(
    "stc_fetch_failures_total",
    "Remote fetch units that failed",
    labelnames=("stage",),
    registry=REGISTRY,
)

SEARCH_LATENCY = Histogram(
    "stc_search_latency_seconds",
    "Latency of full-text searches",
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "stc_index_documents",
    "Number of documents in the full-text index",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "SYNC_ITEMS",
    "FETCH_FAILURES",
    "SEARCH_LATENCY",
    "INDEX_SIZE",
    "metrics_response",
]
