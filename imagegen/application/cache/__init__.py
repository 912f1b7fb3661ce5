"""Response cache for generation results with TTL sweeping."""

from .store import CacheStore
from .models import CacheEntry
from .keys import compute_cache_key
from .statistics import CacheStatistics

__all__ = ["CacheStore", "CacheEntry", "CacheStatistics", "compute_cache_key"]
