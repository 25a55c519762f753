"""
In-memory TTL cache for backend responses with in-flight request sharing.

Concurrent callers asking for the same key while a fetch is running await
the same shared future, so each key has at most one fetch in flight. The
shared future is a ``concurrent.futures.Future``: Streamlit runs each session
in its own thread with its own event loop, and callers on any loop can wait
on it. A failed fetch leaves nothing behind and the next call starts over.
There is no retry and no request timeout: a fetcher that never finishes keeps
its key pending.
"""

import asyncio
import concurrent.futures
import functools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set, TypeVar

from .assumptions import DEFAULT_TTL_MS

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class CacheEntry:
    data: Any
    timestamp: float  # ms, from the cache clock
    ttl_ms: float
    pending: Optional[concurrent.futures.Future] = None


class TTLCache:
    """
    Keyed store of fetched values that expire after a per-entry TTL.

    Safe to share between threads; the fetch itself runs on the event loop
    of the caller that started it.

    Args:
        clock: Returns the current time in seconds; monotonic by default
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._now_ms() - entry.timestamp < entry.ttl_ms

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value if still fresh; expired entries are dropped."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.pending is not None:
                return None
            if not self._is_fresh(entry):
                logger.debug("Cache entry expired: %s", key)
                del self._entries[key]
                return None
            return entry.data

    async def fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl_ms: float = DEFAULT_TTL_MS
    ) -> T:
        """
        Return the value for key, calling fetcher only when nothing usable is cached.

        Args:
            key: Cache key, typically the request URL
            fetcher: Coroutine function producing a fresh value
            ttl_ms: How long a fetched value stays fresh

        Returns:
            The cached or freshly fetched value

        Raises:
            Whatever fetcher raises; the entry is removed first
        """
        while True:
            with self._lock:
                existing = self._entries.get(key)
                if existing is not None and existing.pending is None:
                    if self._is_fresh(existing):
                        logger.debug("Cache hit: %s", key)
                        return existing.data
                    del self._entries[key]
                    existing = None

                if existing is not None:
                    logger.debug("Joining in-flight fetch: %s", key)
                    shared = existing.pending
                    owner = False
                else:
                    logger.debug("Cache miss: %s", key)
                    shared = concurrent.futures.Future()
                    self._entries[key] = CacheEntry(
                        data=None, timestamp=self._now_ms(), ttl_ms=ttl_ms, pending=shared
                    )
                    owner = True

            if owner:
                task = asyncio.ensure_future(self._run_fetch(key, fetcher, ttl_ms, shared))
                self._tasks.add(task)
                task.add_done_callback(functools.partial(self._fetch_done, key, shared))

            try:
                return await asyncio.shield(asyncio.wrap_future(shared))
            except asyncio.CancelledError:
                # The loop that ran the fetch went away; start over
                if not owner and shared.cancelled():
                    continue
                raise

    async def _run_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl_ms: float,
        shared: concurrent.futures.Future
    ) -> None:
        try:
            result = await fetcher()
        except Exception as exc:
            logger.warning("Fetch failed for %s: %s", key, exc)
            self._release(key, shared)
            shared.set_exception(exc)
            return

        with self._lock:
            # An invalidate() during the fetch hands the key to a newer request
            if self._owns(key, shared):
                self._entries[key] = CacheEntry(data=result, timestamp=self._now_ms(), ttl_ms=ttl_ms)
        shared.set_result(result)

    def _fetch_done(self, key: str, shared: concurrent.futures.Future, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled() and not shared.done():
            logger.debug("Fetch cancelled: %s", key)
            self._release(key, shared)
            shared.cancel()

    def _release(self, key: str, shared: concurrent.futures.Future) -> None:
        with self._lock:
            if self._owns(key, shared):
                del self._entries[key]

    def _owns(self, key: str, shared: concurrent.futures.Future) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.pending is shared

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one key, or everything when key is empty. Unknown keys are ignored."""
        with self._lock:
            if not key:
                self._entries.clear()
                return
            self._entries.pop(key, None)


_default_cache = TTLCache()


def get_default_cache() -> TTLCache:
    return _default_cache


def get_cached_value(key: str) -> Optional[Any]:
    return _default_cache.get(key)


async def fetch_with_cache(
    key: str,
    fetcher: Callable[[], Awaitable[T]],
    ttl_ms: float = DEFAULT_TTL_MS
) -> T:
    return await _default_cache.fetch(key, fetcher, ttl_ms=ttl_ms)


def invalidate_cache(key: Optional[str] = None) -> None:
    _default_cache.invalidate(key)
