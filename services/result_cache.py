"""
In-process TTL result cache.

Entries expire on an absolute deadline (clock() + ttl). The clock is injectable
so tests can move time without sleeping.
"""
from typing import Any, Callable, Dict, Optional, Tuple
import copy
import logging
import time

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class ResultCache:
    """Key -> value store with per-entry expiry.

    Reads are lock-free; writes are blind overwrites (last writer wins). Values
    are deep-copied in and out so callers cannot mutate what later requests see.
    """

    def __init__(self, ttl_seconds: float = 3600, clock: Optional[Clock] = None):
        self.ttl_seconds = ttl_seconds
        self._clock: Clock = clock or time.monotonic
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss or an expired entry."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            # pop with default: a concurrent writer may already have replaced it
            if self._entries.get(key) is entry:
                self._entries.pop(key, None)
            logger.debug("Result cache expired | key=%s", key)
            return None
        logger.debug("Result cache hit | key=%s", key)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl is None else ttl
        expires_at = self._clock() + float(ttl)
        self._entries[key] = (copy.deepcopy(value), expires_at)
        logger.debug("Result cache write | key=%s ttl=%s", key, ttl)

    def invalidate(self, key: str) -> bool:
        """Drop one entry; returns whether anything was cached under key."""
        return self._entries.pop(key, None) is not None
