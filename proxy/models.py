"""Data model shared by the proxy components."""

import json
import math
from enum import Enum
from numbers import Number
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_HOST, DEFAULT_PORT

# Results travel as plain JSON objects: the daemon's own fields plus
# ``cached`` and ``node``, or ``error`` and ``node`` for a failed fetch.
Result = Dict[str, Any]


class UpstreamAddress(BaseModel):
    """One daemon instance reachable over HTTP."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(min_length=1)
    port: int = Field(gt=0, lt=65536)

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def as_dict(self) -> Dict[str, Any]:
        return {"host": self.host, "port": self.port}

    @classmethod
    def resolve(cls, host: Optional[str] = None, port: Optional[int] = None,
                default: Optional["UpstreamAddress"] = None) -> "UpstreamAddress":
        """Fill in whatever the caller left out from ``default``."""
        default = default or DEFAULT_UPSTREAM
        if not host:
            return default if port is None else cls(host=default.host, port=port)
        return cls(host=host, port=default.port if port is None else port)


DEFAULT_UPSTREAM = UpstreamAddress(host=DEFAULT_HOST, port=DEFAULT_PORT)


class Operation(str, Enum):
    """Daemon queries the proxy knows how to forward."""
    GETINFO = "getinfo"
    GETHEIGHT = "getheight"
    GETTRANSACTIONS = "gettransactions"
    JSON_RPC = "json_rpc"
    JSON_RPC_POST = "json_rpc_post"

    @property
    def path(self) -> str:
        if self is Operation.JSON_RPC_POST:
            return "/json_rpc"
        return f"/{self.value}"

    @property
    def method(self) -> str:
        return "POST" if self is Operation.JSON_RPC_POST else "GET"

    def operation_id(self, body: Any = None) -> str:
        """Identify this call inside a cache key.

        Two RPC POSTs to the same node share a key only if their bodies
        serialize identically.
        """
        if self is Operation.JSON_RPC_POST:
            return serialize_body(body)
        if self is Operation.JSON_RPC:
            return "getjsonrpc"
        return self.value


def serialize_body(body: Any) -> str:
    return json.dumps(body, sort_keys=True, separators=(",", ":"))


def with_cached_flag(value: Result, flag: bool) -> Result:
    """Return a copy of ``value`` carrying ``cached=flag``.

    The stored value is never touched, so one cache entry can serve any
    number of hits.
    """
    decorated = dict(value)
    decorated["cached"] = flag
    return decorated


class ErrorResult(dict):
    """``{"error", "node"}`` payload for a fetch that failed.

    A distinct type because a successful JSON-RPC envelope may carry its
    own ``error`` member and must still be cached.
    """
    pass


def error_result(error: Any, node: Dict[str, Any]) -> ErrorResult:
    message = str(error) or type(error).__name__
    return ErrorResult(error=message, node=dict(node))


def is_error(result: Result) -> bool:
    return isinstance(result, ErrorResult)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def is_finite_number(value: Any) -> bool:
    """True for ints and floats that are not bool, NaN or infinite."""
    if isinstance(value, bool) or not isinstance(value, Number):
        return False
    return math.isfinite(value)
