"""
OrderLink Cache - Core types and the backend contract.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# ============================================================================
# Cache Entry
# ============================================================================

@dataclass(slots=True)
class CacheEntry:
    """
    Single cache entry with metadata.

    ``expires_at`` is on the ``time.monotonic()`` clock.
    """
    key: str
    value: Any
    created_at: float = field(default_factory=time.monotonic)
    expires_at: Optional[float] = None
    last_accessed: float = field(default_factory=time.monotonic)
    access_count: int = 0

    @property
    def is_expired(self) -> bool:
        """Check if entry has expired."""
        if self.expires_at is None:
            return False
        return time.monotonic() >= self.expires_at

    @property
    def ttl_remaining(self) -> Optional[float]:
        """Remaining TTL in seconds, or None if no expiry."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    def touch(self) -> None:
        """Update access metadata."""
        self.last_accessed = time.monotonic()
        self.access_count += 1

    def __repr__(self) -> str:
        ttl = f", ttl={self.ttl_remaining:.1f}s" if self.ttl_remaining else ""
        return f"<CacheEntry key={self.key!r} hits={self.access_count}{ttl}>"


# ============================================================================
# Cache Stats
# ============================================================================

@dataclass
class CacheStats:
    """Aggregate cache statistics for observability."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    errors: int = 0
    size: int = 0
    max_size: int = 0
    backend: str = "unknown"
    uptime_seconds: float = 0.0

    @property
    def hit_rate(self) -> float:
        """Cache hit rate as a percentage."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits / total) * 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "evictions": self.evictions,
            "errors": self.errors,
            "hit_rate": round(self.hit_rate, 2),
            "size": self.size,
            "max_size": self.max_size,
            "backend": self.backend,
            "uptime_seconds": round(self.uptime_seconds, 2),
        }


# ============================================================================
# Backend contract
# ============================================================================

class CacheBackend(ABC):
    """
    Abstract cache backend.

    Backends raise on infrastructure failure. ``CacheService`` decides
    how each operation degrades.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections / start background tasks."""
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        """Release resources."""
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for ``key`` or None."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store ``value``. ``ttl`` in seconds, None or 0 means no expiry."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if it existed."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def expire(self, key: str, ttl: int) -> bool:
        """Reset the TTL of an existing key. Returns False if missing."""
        ...

    @abstractmethod
    async def increment(self, key: str, delta: int = 1, ttl: Optional[int] = None) -> int:
        """
        Add ``delta`` to an integer counter.

        A missing key starts from zero and receives ``ttl``. The TTL of an
        existing counter is left unchanged.
        """
        ...

    @abstractmethod
    async def keys(self, pattern: str = "*") -> List[str]:
        """List live keys matching a glob pattern."""
        ...

    @abstractmethod
    async def clear(self) -> int:
        """Remove every key. Returns the number removed."""
        ...

    @abstractmethod
    async def stats(self) -> CacheStats:
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        ...
