"""Shared fixtures for the proxy test suite."""
import asyncio
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.settings import ProxySettings
from proxy.models import Operation, UpstreamAddress, error_result


class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """
    In-memory replacement for UpstreamClient.

    ``heights`` maps a host to the height it reports; a host mapped to None
    fails like an unreachable daemon. ``delays`` maps a host to seconds to
    wait before answering. ``raises`` maps a host to an exception to raise.
    """

    def __init__(self, heights=None, delays=None, raises=None, difficulty=60):
        self.heights = heights or {}
        self.delays = delays or {}
        self.raises = raises or {}
        self.difficulty = difficulty
        self.calls = []
        self.closed = False

    def count(self, operation=None):
        if operation is None:
            return len(self.calls)
        return sum(1 for op, _, _ in self.calls if op == operation)

    async def fetch(self, operation, address, body=None):
        self.calls.append((Operation(operation), address, body))
        delay = self.delays.get(address.host)
        if delay:
            await asyncio.sleep(delay)
        if address.host in self.raises:
            raise self.raises[address.host]
        if address.host in self.heights and self.heights[address.host] is None:
            return error_result(ConnectionRefusedError(f"connect ECONNREFUSED {address.host}"),
                                address.as_dict())

        node = address.as_dict()
        operation = Operation(operation)
        if operation is Operation.GETINFO:
            return {"difficulty": self.difficulty, "height": 100, "status": "OK",
                    "globalHashRate": self.difficulty // 30, "cached": False, "node": node}
        if operation is Operation.GETHEIGHT:
            return {"height": self.heights.get(address.host, 100), "network_height": 100,
                    "status": "OK", "cached": False, "node": node}
        if operation is Operation.GETTRANSACTIONS:
            return {"transactions": [], "status": "OK", "cached": False, "node": node}
        if operation is Operation.JSON_RPC:
            return {"jsonrpc": "2.0", "error": {"code": -32600, "message": "Invalid Request"},
                    "cached": False, "node": node}
        return {"jsonrpc": "2.0", "id": (body or {}).get("id"), "result": {"echo": body},
                "cached": False, "node": node}

    async def close(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return ProxySettings(
        cache_ttl=30,
        seeds=[
            UpstreamAddress(host="seed-a", port=11898),
            UpstreamAddress(host="seed-b", port=11898),
            UpstreamAddress(host="seed-c", port=11898),
        ]
    )


@pytest.fixture
def fake_upstream():
    return FakeUpstream()


@pytest.fixture
def upstream_factory():
    return FakeUpstream
