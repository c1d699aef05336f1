"""
OrderLink Cache - CacheService: high-level API for cache operations.

Wraps the configured backend with:
- Automatic key building (optional prefix / namespace)
- Default TTLs
- Per-operation failure handling: every failure is logged, counted and
  converted to a return value instead of propagating

Failure results per operation:

=========== =============================
operation   on backend failure
=========== =============================
get         ``default``
set         ``False``
delete      ``False``
exists      ``False``
expire      ``False``
incr        ``None``
=========== =============================

Callers pick the fail-open / fail-closed policy from these results.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from orderlink.config import CacheConfig
from .core import CacheBackend, CacheStats
from .faults import CacheBackendFault, CacheFault
from .key_builder import DefaultKeyBuilder

logger = logging.getLogger("orderlink.cache")


class CacheService:
    """
    High-level cache service shared by the authenticator, the chat
    activation store, the location broadcaster and the rate limiter.

    Usage::

        await cache.set("chat:active:O1", record, ttl=86400)
        if await cache.exists("chat:active:O1"):
            ...
    """

    def __init__(
        self,
        backend: CacheBackend,
        config: Optional[CacheConfig] = None,
        namespace: str = "",
    ):
        self._backend = backend
        self._config = config or CacheConfig()
        self._key_builder = DefaultKeyBuilder()
        self._default_ttl = self._config.default_ttl
        self._key_prefix = self._config.key_prefix
        self._namespace = namespace
        self._initialized = False
        self.last_fault: Optional[CacheFault] = None

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    # ── Lifecycle ────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Initialize the cache service and its backend."""
        if self._initialized:
            return
        try:
            await self._backend.initialize()
        except Exception as e:
            logger.error(f"Cache service initialization failed: {e}")
            raise
        self._initialized = True
        logger.info(f"Cache service initialized (backend={self._backend.name})")

    async def shutdown(self) -> None:
        """Shutdown the cache service and its backend."""
        if not self._initialized:
            return
        await self._backend.shutdown()
        self._initialized = False
        logger.info("Cache service shut down")

    # ── Core Operations ──────────────────────────────────────────────

    def _key(self, key: str) -> str:
        return self._key_builder.build(self._namespace, key, self._key_prefix)

    async def get(self, key: str, default: Any = None) -> Any:
        """
        Get a value from cache.

        Returns:
            Cached value or default. Never raises; returns default on error.
        """
        try:
            entry = await self._backend.get(self._key(key))
        except Exception as e:
            self._report("get", key, e)
            return default
        if entry is None:
            return default
        return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set a value in cache.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time-to-live in seconds (uses default if None, 0 = no expiry)

        Returns:
            True if stored, False if the backend failed.
        """
        effective_ttl = ttl if ttl is not None else self._default_ttl
        try:
            await self._backend.set(self._key(key), value, ttl=effective_ttl)
        except Exception as e:
            self._report("set", key, e)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            return await self._backend.delete(self._key(key))
        except Exception as e:
            self._report("delete", key, e)
            return False

    async def exists(self, key: str) -> bool:
        """Check if key exists. A backend failure reads as missing."""
        try:
            return await self._backend.exists(self._key(key))
        except Exception as e:
            self._report("exists", key, e)
            return False

    async def expire(self, key: str, ttl: int) -> bool:
        try:
            return await self._backend.expire(self._key(key), ttl)
        except Exception as e:
            self._report("expire", key, e)
            return False

    async def incr(self, key: str, ttl: Optional[int] = None, delta: int = 1) -> Optional[int]:
        """Increment a counter, creating it with ``ttl``. None on failure."""
        try:
            return await self._backend.increment(self._key(key), delta=delta, ttl=ttl)
        except Exception as e:
            self._report("incr", key, e)
            return None

    async def stats(self) -> CacheStats:
        return await self._backend.stats()

    async def health_check(self) -> bool:
        """Round-trip a probe key through the backend."""
        probe = self._key("__health__")
        try:
            await self._backend.set(probe, 1, ttl=5)
            await self._backend.delete(probe)
            return True
        except Exception as e:
            self._report("health_check", "__health__", e)
            return False

    def _report(self, operation: str, key: str, error: Exception) -> None:
        if isinstance(error, CacheFault):
            fault = error
        else:
            fault = CacheBackendFault(
                backend=self._backend.name,
                operation=operation,
                reason=str(error),
            )
        self.last_fault = fault
        logger.warning(f"Cache {operation.upper()} failed for key '{key}': {fault}")
