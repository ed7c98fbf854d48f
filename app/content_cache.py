"""
Short-lived storage for submitted HTML bodies.

A POSTed HTML body is stored under a random key, then rendered by pointing the
browser back at this service (``/?key=<key>``). Entries are deleted on first
read, expire after a fixed time-to-live, and the store is capped in size.
"""

from __future__ import annotations

import asyncio
import contextlib
import heapq
import logging
import os
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60
DEFAULT_MAX_ENTRIES = 1000
DEFAULT_SWEEP_INTERVAL_SECONDS = 10


@dataclass(frozen=True)
class CacheEntry:
    content: str
    expires_at: float


class ContentCache:
    """
    Expiring key -> HTML store with delete-on-read semantics.

    A min-heap of ``(expires_at, key)`` keeps expiry sweeps and evictions at
    O(log n) per removed entry. Heap items whose key was already popped are
    skipped lazily.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._expiry_heap: list[tuple[float, str]] = []
        self._sweep_task: asyncio.Task | None = None
        self._shutdown_event: asyncio.Event | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def put(self, content: str) -> str:
        """Store ``content`` and return the key it can be fetched with."""
        while len(self._entries) >= self.max_entries:
            self._evict_oldest()

        key = uuid.uuid4().hex
        expires_at = self._clock() + self.ttl_seconds
        self._entries[key] = CacheEntry(content=content, expires_at=expires_at)
        heapq.heappush(self._expiry_heap, (expires_at, key))
        logger.debug("Cached %d characters under a new key (%d entries)", len(content), len(self._entries))
        return key

    def pop(self, key: str) -> str | None:
        """Return and delete the content stored under ``key``, or None if unknown or expired."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            logger.debug("Cache entry expired before it was read")
            return None
        return entry.content

    def sweep(self) -> int:
        """Remove all expired entries and return how many were removed."""
        now = self._clock()
        removed = 0
        while self._expiry_heap and self._expiry_heap[0][0] <= now:
            expires_at, key = heapq.heappop(self._expiry_heap)
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at == expires_at:
                del self._entries[key]
                removed += 1
        if removed:
            logger.debug("Swept %d expired cache entries", removed)
        return removed

    def _evict_oldest(self) -> None:
        while self._expiry_heap:
            expires_at, key = heapq.heappop(self._expiry_heap)
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at == expires_at:
                del self._entries[key]
                logger.warning("Content cache full (%d entries), evicted the entry closest to expiry", self.max_entries)
                return

    async def start(self) -> None:
        """Start the periodic expiry sweep."""
        if self._sweep_task is not None:
            return
        self._shutdown_event = asyncio.Event()
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info("Content cache sweep started (interval: %ss, ttl: %ss)", self.sweep_interval, self.ttl_seconds)

    async def stop(self) -> None:
        """Stop the periodic sweep and drop all entries."""
        if self._sweep_task is not None and self._shutdown_event is not None:
            self._shutdown_event.set()
            try:
                await asyncio.wait_for(self._sweep_task, timeout=5.0)
            except TimeoutError:
                self._sweep_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._sweep_task
            finally:
                self._sweep_task = None
        self._entries.clear()
        self._expiry_heap.clear()

    async def _sweep_loop(self) -> None:
        shutdown_event = self._shutdown_event
        assert shutdown_event is not None
        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.sweep_interval)
                break
            except TimeoutError:
                pass
            self.sweep()


def _float_from_env(env_var: str, default: float) -> float:
    value = os.environ.get(env_var)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        logger.warning("Invalid %s value '%s', using default: %s", env_var, value, default)
        return default
    if parsed <= 0:
        logger.warning("%s must be positive, using default: %s", env_var, default)
        return default
    return parsed


# Global singleton instance
_content_cache: ContentCache | None = None


def get_content_cache() -> ContentCache:
    """
    Get the global ContentCache, configured from CONTENT_CACHE_TTL,
    CONTENT_CACHE_MAX_ENTRIES and CONTENT_CACHE_SWEEP_INTERVAL.
    """
    global _content_cache  # noqa: PLW0603
    if _content_cache is None:
        _content_cache = ContentCache(
            ttl_seconds=_float_from_env("CONTENT_CACHE_TTL", DEFAULT_TTL_SECONDS),
            max_entries=int(_float_from_env("CONTENT_CACHE_MAX_ENTRIES", DEFAULT_MAX_ENTRIES)),
            sweep_interval=_float_from_env("CONTENT_CACHE_SWEEP_INTERVAL", DEFAULT_SWEEP_INTERVAL_SECONDS),
        )
    return _content_cache
