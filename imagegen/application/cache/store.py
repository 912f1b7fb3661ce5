"""In-memory response cache with TTL expiry and a periodic sweep task."""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import anyio
from anyio.abc import TaskGroup, TaskStatus

from .models import CacheEntry
from .statistics import CacheStatistics
from ...constants import CACHE_KEY_LOG_PREFIX_LENGTH, DEFAULT_CACHE_TTL_SECONDS
from ...domain.models import GenerationResponse
from ...logging import debug, info, warning, LogRecord, LogEvent


def _short(key: str) -> str:
    return key[:CACHE_KEY_LOG_PREFIX_LENGTH] + "..."


class CacheStore:
    """
    Maps request fingerprints to previously produced responses.

    The store knows nothing about the filesystem; callers pass a ``validate``
    callable to :meth:`get` to reject entries whose files are gone.
    Entries expire after ``ttl_seconds`` and are removed by :meth:`sweep`,
    which runs periodically while the store is :meth:`running`.

    All access to the entry map is serialized through a single lock so
    concurrent pipeline invocations never race on get/put/evict.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        sweep_interval_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._ttl_seconds = ttl_seconds
        self._sweep_interval = sweep_interval_seconds or ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = anyio.Lock()
        self._statistics = CacheStatistics()
        self._sweep_scope: Optional[anyio.CancelScope] = None

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    @property
    def sweep_interval_seconds(self) -> float:
        return self._sweep_interval

    @property
    def is_sweeping(self) -> bool:
        return self._sweep_scope is not None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def get(
        self,
        key: str,
        validate: Optional[Callable[[CacheEntry], bool]] = None,
    ) -> Optional[CacheEntry]:
        """Return the current entry for ``key``, or None.

        An entry rejected by ``validate`` is evicted and counted as a miss.
        """
        async with self._lock:
            entry = self._entries.get(key)

        if entry is not None and validate is not None and not validate(entry):
            await self.evict(key)
            entry = None

        if entry is None:
            self._statistics.record_miss()
            return None

        self._statistics.record_hit()
        debug(
            LogRecord(
                event=LogEvent.CACHE_EVENT.value,
                message="Cache hit",
                data={"cache_key": _short(key)},
            )
        )
        return entry

    async def put(self, key: str, response: GenerationResponse) -> CacheEntry:
        """Insert or replace the entry for ``key`` stamped with the current time."""
        entry = CacheEntry(response=response, timestamp=self._clock())
        async with self._lock:
            self._entries[key] = entry
        self._statistics.record_insertion()

        info(
            LogRecord(
                event=LogEvent.CACHE_EVENT.value,
                message="Response cached",
                data={
                    "cache_key": _short(key),
                    "image_count": len(response.image_paths),
                },
            )
        )
        return entry

    async def evict(self, key: str) -> bool:
        """Remove ``key``; returns whether an entry was present."""
        async with self._lock:
            removed = self._entries.pop(key, None)

        if removed is None:
            return False

        self._statistics.record_invalidation()
        info(
            LogRecord(
                event=LogEvent.CACHE_EVENT.value,
                message="Cache entry invalidated",
                data={"cache_key": _short(key)},
            )
        )
        return True

    async def sweep(self, now: Optional[float] = None) -> List[str]:
        """Remove every entry older than the TTL at ``now``.

        Returns:
            The keys that were removed.
        """
        if now is None:
            now = self._clock()

        async with self._lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if entry.is_expired(self._ttl_seconds, now)
            ]
            for key in expired:
                del self._entries[key]

        if expired:
            self._statistics.record_eviction(len(expired))
            debug(
                LogRecord(
                    event=LogEvent.CACHE_EVENT.value,
                    message="Expired cache entries removed",
                    data={"count": len(expired), "remaining": len(self._entries)},
                )
            )
        return expired

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
        self._statistics.reset()

    def get_stats(self) -> Dict[str, Any]:
        stats = self._statistics.get_stats()
        stats["size"] = len(self._entries)
        stats["ttl_seconds"] = self._ttl_seconds
        return stats

    async def _sweep_loop(
        self, *, task_status: TaskStatus = anyio.TASK_STATUS_IGNORED
    ) -> None:
        """Background task removing expired entries every sweep interval."""
        with anyio.CancelScope() as scope:
            self._sweep_scope = scope
            task_status.started()
            while True:
                await anyio.sleep(self._sweep_interval)
                try:
                    await self.sweep()
                except Exception as e:
                    warning(
                        LogRecord(
                            event=LogEvent.CACHE_EVENT.value,
                            message="Error in cache sweep",
                            data={"error": str(e)},
                        ),
                        exc=e,
                    )

    @asynccontextmanager
    async def running(self) -> AsyncIterator["CacheStore"]:
        """Run the periodic sweep for the duration of the block.

        The sweep task is cancelled on exit, so no timer outlives the store.
        """
        async with anyio.create_task_group() as tg:
            await self.start(tg)
            try:
                yield self
            finally:
                self.shutdown()

    async def start(self, task_group: TaskGroup) -> None:
        """Launch the sweep loop in ``task_group``; a no-op if already running."""
        if self._sweep_scope is not None:
            return
        await task_group.start(self._sweep_loop)
        info(
            LogRecord(
                event=LogEvent.CACHE_EVENT.value,
                message="Cache sweep started",
                data={
                    "ttl_seconds": self._ttl_seconds,
                    "sweep_interval_seconds": self._sweep_interval,
                },
            )
        )

    def shutdown(self) -> None:
        """Stop the periodic sweep; safe to call more than once."""
        if self._sweep_scope is None:
            return
        self._sweep_scope.cancel()
        self._sweep_scope = None
        info(
            LogRecord(
                event=LogEvent.CACHE_EVENT.value,
                message="Cache sweep stopped",
                data=self.get_stats(),
            )
        )
