"""Disk cache for validated narrative-service responses."""

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import diskcache

logger = logging.getLogger(__name__)


class NarrativeCache:
    """
    Stores validated narrative-service responses by canonical input hash.

    Only validated responses are ever stored; a failed or rejected fetch
    leaves no entry, so the next call retries the service.
    """

    def __init__(self, cache_dir: str | None = None, ttl: int | None = None):
        if cache_dir is None:
            cache_dir = os.environ.get("NARRATIVE_CACHE_DIR", ".cache/narrative")
        self.cache: diskcache.Cache = diskcache.Cache(cache_dir)
        self._default_ttl = ttl if ttl is not None else int(os.environ.get("NARRATIVE_CACHE_TTL", "86400"))
        # Singleflight: key -> in-flight fetch task
        self._inflight: dict[str, "asyncio.Task[Any]"] = {}
        self._inflight_lock = asyncio.Lock()

    def store(self, key: str, value: Any, ttl: int | None = None) -> None:
        """
        Store a validated response.

        Args:
            key: Canonical input hash
            value: JSON-compatible response payload
            ttl: Cache TTL in seconds (default: NARRATIVE_CACHE_TTL)
        """
        entry = {
            "value": value,
            "stored_at": datetime.now(timezone.utc).isoformat(),
        }
        expire = ttl if ttl is not None else self._default_ttl
        self.cache.set(key, entry, expire=expire)

    def get(self, key: str) -> Any | None:
        """Cached response for key, or None."""
        entry = self.cache.get(key)
        if not entry:
            return None
        return entry["value"]

    def has(self, key: str) -> bool:
        return key in self.cache

    def clear(self) -> None:
        """Clear all cached responses."""
        self.cache.clear()

    async def get_or_fetch(self, key: str, fetcher: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached response or fetch it once.

        Concurrent callers for the same key join the in-flight fetch instead
        of starting another. Exceptions from the fetcher propagate to every
        joined caller and nothing is cached. Every caller awaits the shared
        task through asyncio.shield, so one caller timing out never cancels
        the fetch the others are waiting on.
        """
        cached = self.get(key)
        if cached is not None:
            logger.debug(f"narrative cache hit: {key}")
            return cached

        async with self._inflight_lock:
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.ensure_future(self._fetch_and_store(key, fetcher))
                self._inflight[key] = task
                task.add_done_callback(lambda t: self._release(key, t))
            else:
                logger.debug(f"narrative fetch {key}: joining in-flight request")

        return await asyncio.shield(task)

    async def _fetch_and_store(self, key: str, fetcher: Callable[[], Awaitable[Any]]) -> Any:
        value = await fetcher()
        self.store(key, value)
        return value

    def _release(self, key: str, task: "asyncio.Future[Any]") -> None:
        # Only remove the entry if it is still this task
        if self._inflight.get(key) is task:
            self._inflight.pop(key, None)
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"narrative fetch {key} failed: {task.exception()!r}")


_default_cache: NarrativeCache | None = None


def get_narrative_cache() -> NarrativeCache:
    """Process-wide cache, created on first use."""
    global _default_cache
    if _default_cache is None:
        _default_cache = NarrativeCache()
    return _default_cache
