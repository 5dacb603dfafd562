from __future__ import annotations

import asyncio
from datetime import timedelta

from domain.errors import CacheError
from engine.config import DEFAULT_CACHE_MAX_AGE, DEFAULT_SWEEP_INTERVAL
from engine.log import get_logger

from .translation_cache import TranslationCache

logger = get_logger("sweeper")


class CacheSweeper:
    """Advisory eviction of stale translations, independent of request traffic."""

    def __init__(
        self,
        cache: TranslationCache,
        max_age: timedelta = DEFAULT_CACHE_MAX_AGE,
        interval: timedelta = DEFAULT_SWEEP_INTERVAL,
    ):
        self._cache = cache
        self._max_age = max_age
        self._interval = interval

    async def sweep_once(self) -> int:
        try:
            removed = await asyncio.to_thread(self._cache.evict_older_than, self._max_age)
        except CacheError as exc:
            logger.warning(f"Cache sweep failed: {exc}")
            return 0
        if removed:
            logger.info(f"Evicted {removed} cached translation(s) older than {self._max_age}")
        return removed

    async def run(self) -> None:
        """Sweep forever; cancel the task to stop."""
        while True:
            await self.sweep_once()
            await asyncio.sleep(self._interval.total_seconds())
