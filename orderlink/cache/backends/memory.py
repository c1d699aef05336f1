"""
OrderLink Cache - In-memory backend.

LRU store on an ``OrderedDict`` with per-entry TTL:
- O(1) get/set/delete with LRU promotion
- TTL expiry heap drained by a background sweeper
- Lazy expiry on read

Values are stored JSON-encoded so reads return fresh copies with the
same shape a Redis round-trip would produce.

Single-process only. Safe for concurrent tasks via ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import time
from collections import OrderedDict
from heapq import heappush, heappop
from typing import Any, List, Optional, Tuple

from ..core import CacheBackend, CacheEntry, CacheStats
from ..serializers import JsonCacheSerializer

logger = logging.getLogger("orderlink.cache.memory")


class MemoryBackend(CacheBackend):
    """In-memory LRU cache backend with TTL support."""

    def __init__(
        self,
        max_size: int = 10000,
        sweep_interval: float = 30.0,
    ):
        """
        Args:
            max_size: Maximum number of entries before LRU eviction
            sweep_interval: Seconds between TTL sweep cycles
        """
        self._max_size = max_size
        self._sweep_interval = sweep_interval
        self._serializer = JsonCacheSerializer()

        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()

        self._stats = CacheStats(max_size=max_size, backend="memory")
        self._start_time = time.monotonic()

        # (expires_at, key)
        self._ttl_heap: List[Tuple[float, str]] = []

        self._sweeper_task: Optional[asyncio.Task] = None
        self._initialized = False

    @property
    def name(self) -> str:
        return "memory"

    async def initialize(self) -> None:
        """Start the background TTL sweeper."""
        if self._initialized:
            return
        self._start_time = time.monotonic()
        self._initialized = True
        self._sweeper_task = asyncio.get_running_loop().create_task(self._ttl_sweeper())

    async def shutdown(self) -> None:
        """Stop sweeper and clear all data."""
        if self._sweeper_task and not self._sweeper_task.done():
            self._sweeper_task.cancel()
            try:
                await self._sweeper_task
            except asyncio.CancelledError:
                pass
        async with self._lock:
            self._store.clear()
            self._ttl_heap.clear()
        self._initialized = False

    async def get(self, key: str) -> Optional[CacheEntry]:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                self._stats.misses += 1
                return None

            entry.touch()
            self._store.move_to_end(key)
            self._stats.hits += 1
            return CacheEntry(
                key=key,
                value=self._serializer.deserialize(entry.value, key),
                created_at=entry.created_at,
                expires_at=entry.expires_at,
                last_accessed=entry.last_accessed,
                access_count=entry.access_count,
            )

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        data = self._serializer.serialize(value, key)
        async with self._lock:
            self._store.pop(key, None)

            while len(self._store) >= self._max_size:
                evicted, _ = self._store.popitem(last=False)
                self._stats.evictions += 1
                logger.debug(f"Evicted {evicted} (capacity {self._max_size})")

            expires_at = None
            if ttl is not None and ttl > 0:
                expires_at = time.monotonic() + ttl
                heappush(self._ttl_heap, (expires_at, key))

            self._store[key] = CacheEntry(key=key, value=data, expires_at=expires_at)
            self._stats.sets += 1
            self._stats.size = len(self._store)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            entry = self._store.pop(key, None)
            self._stats.size = len(self._store)
            if entry is None or entry.is_expired:
                return False
            self._stats.deletes += 1
            return True

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live_entry(key) is not None

    async def expire(self, key: str, ttl: int) -> bool:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return False
            entry.expires_at = time.monotonic() + ttl if ttl > 0 else None
            if entry.expires_at is not None:
                heappush(self._ttl_heap, (entry.expires_at, key))
            return True

    async def increment(self, key: str, delta: int = 1, ttl: Optional[int] = None) -> int:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                while len(self._store) >= self._max_size:
                    self._store.popitem(last=False)
                    self._stats.evictions += 1
                value = delta
                expires_at = time.monotonic() + ttl if ttl else None
                if expires_at is not None:
                    heappush(self._ttl_heap, (expires_at, key))
                self._store[key] = CacheEntry(
                    key=key,
                    value=self._serializer.serialize(value, key),
                    expires_at=expires_at,
                )
            else:
                current = self._serializer.deserialize(entry.value, key)
                if not isinstance(current, int):
                    raise TypeError(f"Value at '{key}' is not an integer")
                value = current + delta
                entry.value = self._serializer.serialize(value, key)
                self._store.move_to_end(key)
            self._stats.size = len(self._store)
            return value

    async def keys(self, pattern: str = "*") -> List[str]:
        async with self._lock:
            return [
                k for k, entry in self._store.items()
                if not entry.is_expired and fnmatch.fnmatchcase(k, pattern)
            ]

    async def clear(self) -> int:
        async with self._lock:
            count = len(self._store)
            self._store.clear()
            self._ttl_heap.clear()
            self._stats.size = 0
            return count

    async def stats(self) -> CacheStats:
        self._stats.size = len(self._store)
        self._stats.uptime_seconds = time.monotonic() - self._start_time
        return self._stats

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        """Return the entry unless missing or expired. Caller holds the lock."""
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired:
            del self._store[key]
            self._stats.evictions += 1
            self._stats.size = len(self._store)
            return None
        return entry

    async def _ttl_sweeper(self) -> None:
        """Background task to clean expired entries."""
        while True:
            try:
                await asyncio.sleep(self._sweep_interval)
                swept = await self._sweep_expired()
                if swept:
                    logger.debug(f"TTL sweeper removed {swept} expired entries")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"TTL sweeper error: {e}")

    async def _sweep_expired(self) -> int:
        """Remove expired entries using the TTL heap."""
        async with self._lock:
            now = time.monotonic()
            swept = 0

            while self._ttl_heap:
                expires_at, key = self._ttl_heap[0]
                if expires_at > now:
                    break
                heappop(self._ttl_heap)

                # Heap entries go stale when a key is rewritten or re-expired
                entry = self._store.get(key)
                if entry and entry.is_expired:
                    del self._store[key]
                    self._stats.evictions += 1
                    swept += 1

            self._stats.size = len(self._store)
            return swept
