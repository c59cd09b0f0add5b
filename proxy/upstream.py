"""
Upstream daemon client.

One HTTP round trip per call against a TurtleCoin daemon, followed by
normalization of the payload into the shape the proxy serves. Every
failure is reported as an ``ErrorResult``; ``fetch`` does not raise.
"""
import asyncio
import json
import time
from typing import Any, Optional

import aiohttp
import structlog

from cache.monitoring import record_upstream_error, record_upstream_latency
from .constants import REQUEST_TIMEOUT, TARGET_BLOCK_TIME
from .errors import PayloadError, TransportError, UpstreamError
from .models import Operation, Result, UpstreamAddress, error_result, is_finite_number, round_half_up

logger = structlog.get_logger()


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite number {name}")


class UpstreamClient:
    """
    HTTP client for TurtleCoin daemons.

    A single ``aiohttp.ClientSession`` is created on first use and shared by
    every request until ``close`` is called.
    """

    def __init__(
        self,
        request_timeout: float = REQUEST_TIMEOUT,
        target_block_time: int = TARGET_BLOCK_TIME,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize the client.

        Args:
            request_timeout: Total timeout for one upstream request, in seconds
            target_block_time: Protocol block time used to derive the hash rate
            session: Optional pre-built session; the client closes it on ``close``
        """
        self.request_timeout = request_timeout
        self.target_block_time = target_block_time
        self.session = session

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
                headers={"Accept": "application/json"}
            )
        return self.session

    async def close(self) -> None:
        if self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None

    async def fetch(self, operation: Operation, address: UpstreamAddress, body: Any = None) -> Result:
        """
        Query one daemon and normalize its answer.

        Args:
            operation: Which daemon endpoint to call
            address: The daemon to call
            body: JSON-RPC request body, only used by ``JSON_RPC_POST``

        Returns:
            The normalized payload, or an ErrorResult
        """
        operation = Operation(operation)
        started = time.monotonic()
        try:
            payload = await self._request(operation, address, body)
            result = self._normalize(operation, address, payload)
        except UpstreamError as e:
            record_upstream_error(operation.value)
            logger.warning("upstream_request_failed",
                           operation=operation.value,
                           host=address.host,
                           port=address.port,
                           error=str(e))
            return error_result(e, address.as_dict())
        finally:
            record_upstream_latency(operation.value, time.monotonic() - started)

        logger.debug("upstream_request_completed",
                     operation=operation.value,
                     host=address.host,
                     port=address.port)
        return result

    async def _request(self, operation: Operation, address: UpstreamAddress, body: Any) -> Any:
        url = f"{address.base_url}{operation.path}"
        session = self._get_session()
        kwargs = {}
        if operation is Operation.JSON_RPC_POST:
            kwargs["json"] = body

        try:
            async with session.request(operation.method, url, **kwargs) as response:
                raw = await response.read()
                if response.status < 200 or response.status >= 300:
                    raise TransportError(f"{url} returned HTTP {response.status}")
        except asyncio.TimeoutError:
            raise TransportError(f"{url} timed out after {self.request_timeout}s")
        except aiohttp.ClientError as e:
            raise TransportError(str(e) or type(e).__name__) from e

        # UnicodeDecodeError is a ValueError too
        try:
            return json.loads(raw, parse_constant=_reject_constant)
        except ValueError as e:
            raise PayloadError(f"{url} returned malformed JSON: {e}") from e

    def _normalize(self, operation: Operation, address: UpstreamAddress, payload: Any) -> Result:
        if not isinstance(payload, dict):
            raise PayloadError(f"expected a JSON object from {operation.path}, got {type(payload).__name__}")

        result = dict(payload)
        result["cached"] = False
        result["node"] = address.as_dict()

        if operation is Operation.GETINFO:
            difficulty = payload.get("difficulty")
            if not is_finite_number(difficulty):
                raise PayloadError("getinfo payload has no numeric difficulty")
            result["globalHashRate"] = round_half_up(difficulty / self.target_block_time)

        return result
