"""
TurtleCoin API Proxy Caching Module

This module provides the short-lived response cache used by the proxy:
entries are keyed by upstream node, port and operation, and expire after a
fixed time-to-live so that clients see fresh chain data within one TTL
window without hammering the daemons.
"""

from .core import CacheEntry, ResponseCache, cache_key
from .monitoring import CacheMonitor, record_upstream_error, record_upstream_latency

__all__ = [
    'CacheEntry',
    'ResponseCache',
    'cache_key',
    'CacheMonitor',
    'record_upstream_error',
    'record_upstream_latency'
]
