"""Data models for the cache module."""

from dataclasses import dataclass

from ...domain.models import GenerationResponse


@dataclass(frozen=True)
class CacheEntry:
    """A cached generation response and the time it was inserted."""

    response: GenerationResponse
    timestamp: float

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        """Check if this entry is older than the TTL at ``now``."""
        return now - self.timestamp > ttl_seconds
