"""
Frequent-Pair Aggregator
Serves the globally most frequent precomputed product pairs through the result cache
"""
from typing import List, Optional
import asyncio
import logging
import time

import settings
from schemas.recommendation_schemas import AssociationDict
from services.result_cache import ResultCache
from services.storage import storage

logger = logging.getLogger(__name__)


class FrequentPairAggregator:
    """
    Reads the top-N rows of product_associations (maintained by an external
    batch job) and memoizes them for the cache TTL. Data may be up to one TTL
    stale; nothing invalidates the entry when associations change.
    """

    def __init__(
        self,
        cache: ResultCache,
        store=None,
        limit: Optional[int] = None,
        cache_key: Optional[str] = None,
        single_flight: Optional[bool] = None,
    ):
        self.cache = cache
        self.store = store or storage
        self.limit = settings.ASSOCIATIONS_LIMIT if limit is None else limit
        self.cache_key = cache_key or settings.ASSOCIATIONS_CACHE_KEY
        self.single_flight = settings.ASSOCIATIONS_SINGLE_FLIGHT if single_flight is None else single_flight
        self._refresh_lock = asyncio.Lock()

    async def top_associations(self) -> List[AssociationDict]:
        cached = self._cache_get()
        if cached is not None:
            return cached

        if not self.single_flight:
            return await self._recompute()

        # Coalesce concurrent misses: whoever waits re-checks before querying
        async with self._refresh_lock:
            cached = self._cache_get()
            if cached is not None:
                return cached
            return await self._recompute()

    async def _recompute(self) -> List[AssociationDict]:
        t0 = time.perf_counter()
        rows = await self.store.get_top_associations(self.limit)
        rows = rows[: self.limit]
        logger.info(
            "associations cache_miss key=%s rows=%s db_time=%.3fs",
            self.cache_key, len(rows), time.perf_counter() - t0,
        )
        self._cache_set(rows)
        return rows

    # Cache failures fail open: a broken read is a miss, a broken write is only logged.

    def _cache_get(self) -> Optional[List[AssociationDict]]:
        try:
            cached = self.cache.get(self.cache_key)
        except Exception as e:
            logger.warning("associations cache.get error key=%s err=%s", self.cache_key, e)
            return None
        if cached is not None:
            logger.info("associations cache_hit key=%s rows=%s", self.cache_key, len(cached))
        return cached

    def _cache_set(self, rows: List[AssociationDict]) -> None:
        try:
            self.cache.set(self.cache_key, rows)
        except Exception as e:
            logger.warning("associations cache.set error key=%s err=%s", self.cache_key, e)
