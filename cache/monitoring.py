"""
Monitoring module for the proxy response cache.

Prometheus metrics for cache effectiveness and upstream daemon health.
"""
import time
from typing import Any, Dict

import structlog
from prometheus_client import Counter, Gauge, Histogram

from .core import ResponseCache

logger = structlog.get_logger()

CACHE_HITS = Counter('turtle_proxy_cache_hits_total', 'Total number of cache hits', ['operation'])
CACHE_MISSES = Counter('turtle_proxy_cache_misses_total', 'Total number of cache misses', ['operation'])
CACHE_SIZE = Gauge('turtle_proxy_cache_size', 'Current number of items in cache')
UPSTREAM_ERRORS = Counter('turtle_proxy_upstream_errors_total',
                          'Total number of failed upstream daemon requests', ['operation'])
UPSTREAM_LATENCY = Histogram('turtle_proxy_upstream_latency_seconds',
                             'Upstream daemon request latency in seconds', ['operation'])


class CacheMonitor:
    """
    Monitor for the proxy cache.

    Records hit/miss counters per operation and keeps the size gauge in
    step with the cache it watches.
    """

    def __init__(self, cache: ResponseCache):
        self.start_time = time.time()
        self.cache = cache

    def record_hit(self, operation: str) -> None:
        CACHE_HITS.labels(operation=operation).inc()

    def record_miss(self, operation: str) -> None:
        CACHE_MISSES.labels(operation=operation).inc()

    def update_size(self) -> None:
        CACHE_SIZE.set(len(self.cache))

    def get_metrics_report(self) -> Dict[str, Any]:
        """
        Generate a metrics report from the cache's own counters.

        Returns:
            Dictionary with cache metrics
        """
        cache_stats = self.cache.get_stats()
        return {
            'uptime_seconds': time.time() - self.start_time,
            'cache_size': cache_stats['size'],
            'total_hits': cache_stats['hits'],
            'total_misses': cache_stats['misses'],
            'overall_hit_ratio': cache_stats['hit_ratio'],
        }

    def log_metrics(self) -> None:
        """Log current cache metrics."""
        logger.info("cache_metrics_report", **self.get_metrics_report())


def record_upstream_error(operation: str) -> None:
    UPSTREAM_ERRORS.labels(operation=operation).inc()


def record_upstream_latency(operation: str, latency: float) -> None:
    UPSTREAM_LATENCY.labels(operation=operation).observe(latency)
