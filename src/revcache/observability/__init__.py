"""Observability module for revcache.

Provides structured logging and metrics:
- JSON structured logging with cache operation context
- Prometheus counters for hits, misses and sliding renewals
"""

from revcache.observability.logging import (
    LogContext,
    cache_key_var,
    configure_logging,
    operation_var,
)
from revcache.observability.metrics import get_metrics, metrics_registry

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "operation_var",
    "cache_key_var",
    # Metrics
    "metrics_registry",
    "get_metrics",
]
