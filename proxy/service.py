"""
Cache-aside access to upstream daemons.

Every public coroutine follows the same path: resolve the target daemon,
look the call up in the response cache, and only on a miss go to the
daemon. Whether a result is reported as ``cached`` is decided here, per
call, and never stored.
"""
from typing import Any, Optional

import structlog

from cache.core import ResponseCache, cache_key
from cache.monitoring import CacheMonitor
from config.settings import ProxySettings
from .models import Operation, Result, UpstreamAddress, is_error, with_cached_flag
from .upstream import UpstreamClient

logger = structlog.get_logger()


class ProxyService:
    """Serves daemon queries from the cache, falling back to the daemon on a miss."""

    def __init__(
        self,
        client: UpstreamClient,
        cache: Optional[ResponseCache] = None,
        settings: Optional[ProxySettings] = None
    ):
        self.settings = settings or ProxySettings()
        self.client = client
        self.cache = cache if cache is not None else ResponseCache(default_ttl=self.settings.cache_ttl)
        self.monitor = CacheMonitor(self.cache)

    def resolve_address(self, host: Optional[str] = None, port: Optional[int] = None) -> UpstreamAddress:
        """Substitute the configured default daemon for whatever is missing."""
        return UpstreamAddress.resolve(host, port, default=self.settings.default_upstream)

    async def invoke(
        self,
        operation: Operation,
        address: Optional[UpstreamAddress] = None,
        body: Any = None
    ) -> Result:
        """
        Run one daemon query through the cache.

        Args:
            operation: Daemon endpoint to query
            address: Target daemon, or None for the configured default
            body: JSON-RPC request body for ``JSON_RPC_POST``

        Returns:
            The normalized result with ``cached`` set for this call, or an
            ErrorResult (never cached)
        """
        operation = Operation(operation)
        address = address or self.settings.default_upstream
        key = cache_key(address.host, address.port, operation.operation_id(body))

        stored = self.cache.get(key)
        if stored is not None:
            self.monitor.record_hit(operation.value)
            logger.debug("cache_hit", operation=operation.value, key=key)
            return with_cached_flag(stored, True)

        self.monitor.record_miss(operation.value)
        logger.debug("cache_miss", operation=operation.value, key=key)

        result = await self.client.fetch(operation, address, body)
        if is_error(result):
            return result

        self.cache.set(key, result)
        self.monitor.update_size()
        return with_cached_flag(result, False)

    async def get_info(self, host: Optional[str] = None, port: Optional[int] = None) -> Result:
        return await self.invoke(Operation.GETINFO, self.resolve_address(host, port))

    async def get_height(self, host: Optional[str] = None, port: Optional[int] = None) -> Result:
        return await self.invoke(Operation.GETHEIGHT, self.resolve_address(host, port))

    async def get_transactions(self, host: Optional[str] = None, port: Optional[int] = None) -> Result:
        return await self.invoke(Operation.GETTRANSACTIONS, self.resolve_address(host, port))

    async def get_json_rpc(self, host: Optional[str] = None, port: Optional[int] = None) -> Result:
        return await self.invoke(Operation.JSON_RPC, self.resolve_address(host, port))

    async def post_json_rpc(self, body: Any, host: Optional[str] = None, port: Optional[int] = None) -> Result:
        return await self.invoke(Operation.JSON_RPC_POST, self.resolve_address(host, port), body)
