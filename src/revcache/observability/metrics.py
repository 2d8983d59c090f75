"""Prometheus metrics for revcache.

Provides counters for cache reads and sliding renewals plus per-operation
latency:
- Hits and misses on get/refresh
- Entries lazily deleted past their absolute expiration
- Sliding renewals by outcome (renewed, conflict, skipped, conceded)

Usage:
    from revcache.observability.metrics import get_metrics

    metrics = get_metrics()
    print(metrics.generate_latest().decode())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from revcache.config import settings

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    cache_hits_total: Any = None
    cache_misses_total: Any = None
    cache_expired_total: Any = None
    cache_renewals_total: Any = None
    cache_operation_duration_seconds: Any = None

    # Internal state
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

        try:
            from prometheus_client import REGISTRY, Counter, Histogram

            self._registry = REGISTRY

            self.cache_hits_total = Counter(
                "revcache_hits_total",
                "Cache reads that found a live entry",
            )

            self.cache_misses_total = Counter(
                "revcache_misses_total",
                "Cache reads that found no live entry",
            )

            self.cache_expired_total = Counter(
                "revcache_expired_total",
                "Entries deleted on read after their absolute expiration",
            )

            self.cache_renewals_total = Counter(
                "revcache_renewals_total",
                "Sliding expiration renewals",
                ["outcome"],
            )

            self.cache_operation_duration_seconds = Histogram(
                "revcache_operation_duration_seconds",
                "Cache operation latency in seconds",
                ["operation"],
                buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
            )

            self._initialized = True
            logger.info("Prometheus metrics initialized")

        except ImportError:
            logger.warning("prometheus_client not installed, metrics disabled")
            self._initialized = True

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not settings.enable_metrics or self._registry is None:
            return b"# Metrics disabled\n"

        from prometheus_client import generate_latest

        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def record_cache_hit() -> None:
    """Record cache hit."""
    metrics = get_metrics()
    if metrics.cache_hits_total:
        metrics.cache_hits_total.inc()


def record_cache_miss() -> None:
    """Record cache miss."""
    metrics = get_metrics()
    if metrics.cache_misses_total:
        metrics.cache_misses_total.inc()


def record_expired_entry() -> None:
    """Record an entry found past its absolute expiration."""
    metrics = get_metrics()
    if metrics.cache_expired_total:
        metrics.cache_expired_total.inc()


def record_renewal(outcome: str) -> None:
    """Record a sliding renewal.

    Args:
        outcome: renewed, conflict, skipped or conceded
    """
    metrics = get_metrics()
    if metrics.cache_renewals_total:
        metrics.cache_renewals_total.labels(outcome=outcome).inc()


def record_cache_operation(operation: str, duration: float) -> None:
    """Record cache operation duration.

    Args:
        operation: Cache operation (get, set, remove, refresh)
        duration: Operation duration in seconds
    """
    metrics = get_metrics()
    if metrics.cache_operation_duration_seconds:
        metrics.cache_operation_duration_seconds.labels(operation=operation).observe(duration)
