"""In-process request cache shared by every caller of the platform API"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    value: Any
    fetched_at: float


class RequestCache:
    """
    Query-result cache keyed by request path.

    Entries are served without a refetch while younger than `stale_seconds`
    and dropped once older than `gc_seconds`. Concurrent fetches of the same
    key share one in-flight load. Nothing is invalidated implicitly: callers
    invalidate by key prefix after a mutation they have observed.
    """

    def __init__(
        self,
        stale_seconds: float = 5 * 60,
        gc_seconds: float = 10 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.stale_seconds = stale_seconds
        self.gc_seconds = gc_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self.hits = 0
        self.misses = 0

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.fetched_at < self.stale_seconds

    def peek(self, key: str) -> Any:
        """Cached value regardless of staleness, or None."""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())

    async def fetch(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        self.prune()
        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry):
            self.hits += 1
            return entry.value

        load = self._inflight.get(key)
        if load is None:
            self.misses += 1
            # The load runs in its own task; a cancelled caller leaves it to the others
            load = asyncio.create_task(self._load(key, loader))
            load.add_done_callback(_retrieve_exception)
            self._inflight[key] = load
        return await asyncio.shield(load)

    async def _load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        try:
            value = await loader()
            self.set(key, value)
            return value
        finally:
            self._inflight.pop(key, None)

    def invalidate(self, *prefixes: str) -> int:
        """Drop entries whose key starts with any prefix; no prefix clears everything."""
        if not prefixes:
            dropped = len(self._entries)
            self._entries.clear()
        else:
            keys = [k for k in self._entries if k.startswith(prefixes)]
            for k in keys:
                del self._entries[k]
            dropped = len(keys)
        if dropped:
            logger.debug("request_cache_invalidated", prefixes=list(prefixes), dropped=dropped)
        return dropped

    def prune(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now - e.fetched_at >= self.gc_seconds]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _retrieve_exception(task: asyncio.Task) -> None:
    # Callers re-raise it; keep the loop from warning when every caller went away
    if not task.cancelled():
        task.exception()


_cache_instance: Optional[RequestCache] = None


def init_request_cache(
    stale_seconds: Optional[float] = None,
    gc_seconds: Optional[float] = None,
) -> RequestCache:
    """Create the process-wide request cache (idempotent)."""
    global _cache_instance

    if _cache_instance is None:
        cfg = settings.request_cache
        _cache_instance = RequestCache(
            stale_seconds=cfg.stale_seconds if stale_seconds is None else stale_seconds,
            gc_seconds=cfg.gc_seconds if gc_seconds is None else gc_seconds,
        )
    return _cache_instance


def get_request_cache() -> RequestCache:
    if _cache_instance is None:
        return init_request_cache()
    return _cache_instance


def shutdown_request_cache() -> None:
    global _cache_instance

    if _cache_instance is not None:
        _cache_instance.clear()
        _cache_instance = None
