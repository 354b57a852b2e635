"""Prometheus metrics for the transposition service.

Metrics:
    transposer_transpose_requests_total     Counter by outcome (success or error kind)
    transposer_transpose_latency_seconds    Histogram of end-to-end transpose latency
    transposer_probe_failures_total         Probes of freshly written outputs that failed
    transposer_analyze_requests_total       Counter of analyze calls by outcome

Usage::

    from infrastructure.metrics import record_transpose

    record_transpose(status="success", latency_seconds=0.42)
"""

from __future__ import annotations

import logging

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

_REGISTRY = CollectorRegistry()

transpose_requests_total = Counter(
    "transposer_transpose_requests_total",
    "Total transpose calls by outcome",
    ["status"],
    registry=_REGISTRY,
)

transpose_latency_seconds = Histogram(
    "transposer_transpose_latency_seconds",
    "End-to-end transpose latency in seconds",
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
    registry=_REGISTRY,
)

probe_failures_total = Counter(
    "transposer_probe_failures_total",
    "Transposed outputs that could not be probed",
    registry=_REGISTRY,
)

analyze_requests_total = Counter(
    "transposer_analyze_requests_total",
    "Total analyze calls by outcome",
    ["status"],
    registry=_REGISTRY,
)

logger.debug("Prometheus metrics registry initialized")


def record_transpose(*, status: str, latency_seconds: float) -> None:
    """Record a finished transpose call.

    Args:
        status: "success" or the error kind, e.g. "cancelled".
        latency_seconds: Wall-clock time in seconds.
    """
    transpose_requests_total.labels(status=status).inc()
    transpose_latency_seconds.observe(latency_seconds)


def record_probe_failure() -> None:
    """Increment the unreadable-output counter."""
    probe_failures_total.inc()


def record_analyze(*, status: str) -> None:
    """Record a finished analyze call."""
    analyze_requests_total.labels(status=status).inc()


def get_metrics_response() -> tuple[bytes, str]:
    """Generate Prometheus text exposition format.

    Returns:
        Tuple of (body_bytes, content_type_string).
    """
    return generate_latest(_REGISTRY), CONTENT_TYPE_LATEST
