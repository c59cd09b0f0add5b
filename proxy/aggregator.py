"""
Network-wide chain height.

Asks every seed daemon for its height at once, waits for all of them, and
reports the spread of the answers that came back.
"""
import asyncio
from typing import Any, List, Optional

import structlog

from cache.core import cache_key
from config.logging import log_error
from config.settings import ProxySettings
from .constants import GLOBAL_HEIGHT_OPERATION, NETWORK_SENTINEL
from .models import (Operation, Result, UpstreamAddress, error_result, is_finite_number,
                     round_half_up, with_cached_flag)
from .service import ProxyService

logger = structlog.get_logger()

GLOBAL_HEIGHT_KEY = cache_key(NETWORK_SENTINEL, NETWORK_SENTINEL, GLOBAL_HEIGHT_OPERATION)
NETWORK_NODE = {"host": NETWORK_SENTINEL, "port": NETWORK_SENTINEL}


def usable_height(result: Any) -> Optional[int]:
    """Return the height carried by a getheight result, or None if there is none."""
    if not isinstance(result, dict):
        return None
    height = result.get("height")
    if not is_finite_number(height) or height <= 0:
        return None
    return height


def summarize_heights(heights: List[int]) -> Result:
    """Reduce a non-empty list of heights to max, min and rounded average."""
    if not heights:
        raise ValueError("cannot summarize an empty list of heights")
    average = round_half_up(sum(heights) / len(heights))
    return {
        "max": max(heights),
        "min": min(heights),
        "average": average,
        "avg": average,
    }


class HeightAggregator:
    """Fans getheight out to the configured seed daemons."""

    def __init__(
        self,
        service: ProxyService,
        seeds: Optional[List[UpstreamAddress]] = None,
        settings: Optional[ProxySettings] = None
    ):
        self.service = service
        self.settings = settings or service.settings
        self.seeds = list(seeds if seeds is not None else self.settings.seeds)

    async def global_height(self) -> Result:
        """
        Get max, min and average height across the seed daemons.

        Seeds that fail are left out of the statistics. If none answers with
        a usable height, an ErrorResult is returned and nothing is cached.
        """
        cache = self.service.cache
        stored = cache.get(GLOBAL_HEIGHT_KEY)
        if stored is not None:
            self.service.monitor.record_hit(GLOBAL_HEIGHT_OPERATION)
            logger.debug("cache_hit", operation=GLOBAL_HEIGHT_OPERATION, key=GLOBAL_HEIGHT_KEY)
            return with_cached_flag(stored, True)

        self.service.monitor.record_miss(GLOBAL_HEIGHT_OPERATION)

        results = await asyncio.gather(
            *(self.service.invoke(Operation.GETHEIGHT, seed) for seed in self.seeds),
            return_exceptions=True
        )

        heights = []
        for seed, result in zip(self.seeds, results):
            if isinstance(result, BaseException):
                log_error(logger, result, {"host": seed.host, "port": seed.port,
                                           "operation": GLOBAL_HEIGHT_OPERATION})
                continue
            height = usable_height(result)
            if height is None:
                logger.info("seed_height_unavailable", host=seed.host, port=seed.port,
                            error=result.get("error"))
                continue
            heights.append(height)

        if not heights:
            logger.warning("global_height_unavailable", seeds=len(self.seeds))
            return error_result("no reachable seed nodes", NETWORK_NODE)

        summary = summarize_heights(heights)
        summary["cached"] = False
        cache.set(GLOBAL_HEIGHT_KEY, summary)
        self.service.monitor.update_size()
        logger.info("global_height_computed", responding=len(heights), seeds=len(self.seeds),
                    max=summary["max"], min=summary["min"], average=summary["average"])
        return with_cached_flag(summary, False)
