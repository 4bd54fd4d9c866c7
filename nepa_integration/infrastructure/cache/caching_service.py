"""Concrete implementation of the in-memory Caching Service.

Holds successful read responses keyed by request identity, with a TTL
checked lazily on read and a bounded size enforced by one of three
eviction strategies (LRU, FIFO, LFU).
"""

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from nepa_integration.domain.interfaces.cache import CacheService
from nepa_integration.domain.models.api import CacheConfig, CacheStrategy, CallConfig
from nepa_integration.domain.models.common import CacheKey

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Internal representation of a cache entry."""
    value: Any
    timestamp: float  # Insertion time on the cache's clock
    hits: int = 0


def make_cache_key(call: CallConfig) -> CacheKey:
    """Derives a stable key from method, path, params and body."""
    identity = {
        "url": call.path,
        "method": call.method,
        "params": call.params,
        "data": call.body,
    }
    encoded = json.dumps(identity, sort_keys=True, default=str, separators=(",", ":"))
    return CacheKey(hashlib.sha256(encoded.encode("utf-8")).hexdigest())


class CachingServiceImpl(CacheService):
    """Single-level in-memory cache with TTL and pluggable eviction.

    Note on LRU: recency is the *insertion* timestamp, not the last read.
    Reads only bump the hit counter, which the LFU strategy uses.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_size: int = 1000,
        strategy: CacheStrategy = CacheStrategy.LRU,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self.strategy = CacheStrategy(strategy)
        self._clock = clock
        logger.info(f"CachingService initialized. ttl={ttl_seconds}s, max={max_size}, strategy={self.strategy.value}")

    @classmethod
    def from_config(cls, config: CacheConfig, clock: Callable[[], float] = time.monotonic) -> "CachingServiceImpl":
        return cls(
            ttl_seconds=config.ttl_seconds,
            max_size=config.max_size,
            strategy=config.strategy,
            clock=clock,
        )

    def reconfigure(self, config: CacheConfig) -> None:
        """Applies new limits; entries beyond a lowered max_size are evicted."""
        self.ttl_seconds = config.ttl_seconds
        self.max_size = config.max_size
        self.strategy = CacheStrategy(config.strategy)
        while self._entries and len(self._entries) > self.max_size:
            self._evict_one()

    @property
    def size(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp > self.ttl_seconds

    # --- Eviction ---

    def _select_victim(self) -> Optional[CacheKey]:
        if not self._entries:
            return None
        if self.strategy is CacheStrategy.FIFO:
            return next(iter(self._entries))
        if self.strategy is CacheStrategy.LFU:
            # min() keeps the first minimum, so ties go to the earliest insertion
            return min(self._entries.items(), key=lambda item: item[1].hits)[0]
        return min(self._entries.items(), key=lambda item: item[1].timestamp)[0]

    def _evict_one(self) -> None:
        victim = self._select_victim()
        if victim is not None:
            del self._entries[victim]
            logger.debug(f"Evicted cache entry ({self.strategy.value}): key={victim}")

    # --- CacheService Interface Implementation ---

    async def get(self, key: CacheKey) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache miss for key: {key}")
            return None
        if self._is_expired(entry):
            del self._entries[key]
            logger.debug(f"Cache entry expired for key: {key}. Removed.")
            return None
        entry.hits += 1
        logger.debug(f"Cache hit for key: {key} (hits={entry.hits})")
        return entry.value

    async def set(self, key: CacheKey, value: Any) -> None:
        if key not in self._entries:
            while self._entries and len(self._entries) >= self.max_size:
                self._evict_one()
        self._entries[key] = CacheEntry(value=value, timestamp=self._clock())
        logger.debug(f"Stored item in cache: key={key}")

    async def delete(self, key: CacheKey) -> None:
        if self._entries.pop(key, None) is not None:
            logger.debug(f"Deleted item from cache: key={key}")

    async def clear(self) -> None:
        self._entries.clear()
        logger.info("Cleared in-memory cache.")
