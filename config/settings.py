"""Runtime configuration for the TurtleCoin API proxy."""

from typing import Any, Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from proxy.constants import (
    BIND_IP,
    BIND_PORT,
    CACHE_TTL,
    DEFAULT_HOST,
    DEFAULT_PORT,
    REQUEST_TIMEOUT,
    SEED_NODES,
    TARGET_BLOCK_TIME,
)
from proxy.models import UpstreamAddress


def _default_seeds() -> List[UpstreamAddress]:
    return [UpstreamAddress(host=host, port=port) for host, port in SEED_NODES]


class ProxySettings(BaseSettings):
    """
    Proxy configuration.

    Every field can be overridden from the environment with the
    ``TURTLE_PROXY_`` prefix, e.g. ``TURTLE_PROXY_CACHE_TTL=60``. Seeds are
    given as JSON: ``[{"host": "node.example", "port": 11898}]``.
    """

    model_config = SettingsConfigDict(
        env_prefix="TURTLE_PROXY_",
        validate_assignment=True,
        extra="forbid",
    )

    # Cache
    cache_ttl: int = Field(default=CACHE_TTL, gt=0, description="Response TTL in seconds")

    # HTTP listener
    bind_ip: str = Field(default=BIND_IP)
    bind_port: int = Field(default=BIND_PORT, gt=0, lt=65536)

    # Upstreams
    default_host: str = Field(default=DEFAULT_HOST, min_length=1)
    default_port: int = Field(default=DEFAULT_PORT, gt=0, lt=65536)
    seeds: List[UpstreamAddress] = Field(default_factory=_default_seeds)
    request_timeout: float = Field(default=REQUEST_TIMEOUT, gt=0,
                                   description="Total timeout for one upstream request, in seconds")

    # Protocol
    target_block_time: int = Field(default=TARGET_BLOCK_TIME, gt=0)

    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def default_upstream(self) -> UpstreamAddress:
        return UpstreamAddress(host=self.default_host, port=self.default_port)

    def get_cache_settings(self) -> Dict[str, Any]:
        """Get cache settings."""
        return {
            "cache_ttl": self.cache_ttl,
            "check_period": max(1, round(self.cache_ttl / 2)),
        }

    def get_upstream_settings(self) -> Dict[str, Any]:
        """Get upstream settings."""
        return {
            "default": self.default_upstream.as_dict(),
            "seeds": [seed.as_dict() for seed in self.seeds],
            "request_timeout": self.request_timeout,
        }
