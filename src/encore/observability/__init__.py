"""Observability module for the Encore backend.

Provides metrics and structured logging:
- Prometheus metrics for HTTP, cache, bus and gateway
- JSON structured logging with correlation IDs
"""

from encore.observability.logging import (
    LogContext,
    configure_logging,
    correlation_id_var,
    request_id_var,
    user_id_var,
)
from encore.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    metrics_registry,
)

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "request_id_var",
    "correlation_id_var",
    "user_id_var",
    # Metrics
    "metrics_registry",
    "get_metrics",
    "MetricsMiddleware",
]
