"""Counters describing response cache activity."""

import time
from typing import Any, Dict


class CacheStatistics:
    """
    Tracks how the response cache is used.

    ``evictions`` counts entries dropped by the TTL sweep while
    ``invalidations`` counts entries dropped because their files vanished.
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.cache_hits = 0
        self.cache_misses = 0
        self.insertions = 0
        self.evictions = 0
        self.invalidations = 0
        self.started_at = time.time()

    def record_hit(self) -> None:
        self.cache_hits += 1

    def record_miss(self) -> None:
        self.cache_misses += 1

    def record_insertion(self) -> None:
        self.insertions += 1

    def record_eviction(self, count: int = 1) -> None:
        self.evictions += count

    def record_invalidation(self) -> None:
        self.invalidations += 1

    @property
    def lookups(self) -> int:
        return self.cache_hits + self.cache_misses

    @property
    def hit_rate(self) -> float:
        return self.cache_hits / self.lookups if self.lookups else 0.0

    def get_stats(self) -> Dict[str, Any]:
        return {
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "hit_rate": round(self.hit_rate, 3),
            "insertions": self.insertions,
            "evictions": self.evictions,
            "invalidations": self.invalidations,
            "uptime_seconds": round(time.time() - self.started_at, 1),
        }
