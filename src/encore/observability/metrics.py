"""Prometheus metrics for the Encore backend.

Provides metrics collection and exposure:
- HTTP request metrics (latency, count)
- Read-through cache metrics (hits, misses, faults, invalidations)
- Event bus metrics (published, received, dropped)
- Real-time gateway connection gauge

Usage:
    from encore.observability.metrics import record_cache_hit

    record_cache_hit("users")
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from prometheus_client import REGISTRY, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from encore.config import settings

if TYPE_CHECKING:
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

_ID_SEGMENT = re.compile(r"^(?:[0-9a-f]{8}-[0-9a-f-]{27}|[0-9a-zA-Z_-]{20,}|\d+)$")


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    # HTTP metrics
    http_requests_total: Any = None
    http_request_duration_seconds: Any = None

    # Cache metrics
    cache_hits_total: Any = None
    cache_misses_total: Any = None
    cache_errors_total: Any = None
    cache_invalidated_keys_total: Any = None

    # Event bus metrics
    events_published_total: Any = None
    events_publish_failures_total: Any = None
    events_received_total: Any = None
    envelopes_dropped_total: Any = None

    # Gateway metrics
    websocket_connections_active: Any = None

    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self._registry = REGISTRY

        self.http_requests_total = Counter(
            "encore_http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
        )
        self.http_request_duration_seconds = Histogram(
            "encore_http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "path"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
        )

        self.cache_hits_total = Counter(
            "encore_cache_hits_total",
            "Read-through cache hits",
            ["resource"],
        )
        self.cache_misses_total = Counter(
            "encore_cache_misses_total",
            "Read-through cache misses",
            ["resource"],
        )
        self.cache_errors_total = Counter(
            "encore_cache_errors_total",
            "Cache store faults recovered by falling back to the source",
            ["operation"],
        )
        self.cache_invalidated_keys_total = Counter(
            "encore_cache_invalidated_keys_total",
            "Cache keys removed by explicit invalidation",
        )

        self.events_published_total = Counter(
            "encore_events_published_total",
            "Envelopes published on the event bus",
            ["envelope_type"],
        )
        self.events_publish_failures_total = Counter(
            "encore_events_publish_failures_total",
            "Envelopes that could not be published",
            ["envelope_type"],
        )
        self.events_received_total = Counter(
            "encore_events_received_total",
            "Envelopes received from the event bus",
            ["envelope_type"],
        )
        self.envelopes_dropped_total = Counter(
            "encore_envelopes_dropped_total",
            "Malformed envelopes dropped by the subscriber",
        )

        self.websocket_connections_active = Gauge(
            "encore_websocket_connections_active",
            "Live real-time connections on this process",
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not settings.enable_metrics or self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry, initializing on first access."""
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware recording request count and latency."""

    def __init__(self, app: "ASGIApp") -> None:
        super().__init__(app)
        self.metrics = get_metrics()

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        if request.url.path in ("/health/live", "/health/ready", "/metrics"):
            return await call_next(request)

        method = request.method
        path = normalize_path(request.url.path)
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time
            if self.metrics.http_requests_total:
                self.metrics.http_requests_total.labels(
                    method=method, path=path, status=status_code
                ).inc()
            if self.metrics.http_request_duration_seconds:
                self.metrics.http_request_duration_seconds.labels(
                    method=method, path=path
                ).observe(duration)


def normalize_path(path: str) -> str:
    """Replace identifier segments with a placeholder to bound label cardinality.

    Examples:
        /api/chats/3f2a.../messages -> /api/chats/{id}/messages
        /api/bookings/42/accept -> /api/bookings/{id}/accept
    """
    parts = [
        "{id}" if _ID_SEGMENT.match(part) else part for part in path.strip("/").split("/") if part
    ]
    return "/" + "/".join(parts) if parts else path


def record_cache_hit(resource: str) -> None:
    metrics = get_metrics()
    if metrics.cache_hits_total:
        metrics.cache_hits_total.labels(resource=resource).inc()


def record_cache_miss(resource: str) -> None:
    metrics = get_metrics()
    if metrics.cache_misses_total:
        metrics.cache_misses_total.labels(resource=resource).inc()


def record_cache_error(operation: str) -> None:
    metrics = get_metrics()
    if metrics.cache_errors_total:
        metrics.cache_errors_total.labels(operation=operation).inc()


def record_cache_invalidation(count: int) -> None:
    metrics = get_metrics()
    if metrics.cache_invalidated_keys_total and count:
        metrics.cache_invalidated_keys_total.inc(count)


def record_event_published(envelope_type: str) -> None:
    metrics = get_metrics()
    if metrics.events_published_total:
        metrics.events_published_total.labels(envelope_type=envelope_type).inc()


def record_event_publish_failure(envelope_type: str) -> None:
    metrics = get_metrics()
    if metrics.events_publish_failures_total:
        metrics.events_publish_failures_total.labels(envelope_type=envelope_type).inc()


def record_event_received(envelope_type: str) -> None:
    metrics = get_metrics()
    if metrics.events_received_total:
        metrics.events_received_total.labels(envelope_type=envelope_type).inc()


def record_envelope_dropped() -> None:
    metrics = get_metrics()
    if metrics.envelopes_dropped_total:
        metrics.envelopes_dropped_total.inc()


def set_active_connections(count: int) -> None:
    metrics = get_metrics()
    if metrics.websocket_connections_active:
        metrics.websocket_connections_active.set(count)
