"""
OrderLink Cache - Redis backend.

Distributed cache shared by every gateway instance (and by the other
platform services that write session tokens). Uses redis-py's asyncio
client with a connection pool. Operation errors are raised as
``CacheBackendFault``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, List, Optional

from ..core import CacheBackend, CacheEntry, CacheStats
from ..faults import CacheBackendFault, CacheConnectionFault
from ..serializers import JsonCacheSerializer

logger = logging.getLogger("orderlink.cache.redis")


class RedisBackend(CacheBackend):
    """
    Redis-backed cache using redis-py async.

    Example:
        backend = RedisBackend(url="redis://localhost:6379/0")
        await backend.initialize()
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        connect_timeout: float = 5.0,
        client: Optional[Any] = None,
    ):
        """
        Args:
            url: Redis connection URL
            max_connections: Pool size
            socket_timeout: Per-operation timeout in seconds
            connect_timeout: Connect timeout in seconds
            client: Pre-built ``redis.asyncio.Redis`` client
        """
        self._url = url
        self._max_connections = max_connections
        self._socket_timeout = socket_timeout
        self._connect_timeout = connect_timeout
        self._serializer = JsonCacheSerializer()
        self._redis = client
        self._stats = CacheStats(backend="redis")
        self._start_time = time.monotonic()
        self._initialized = False

    @property
    def name(self) -> str:
        return "redis"

    @property
    def client(self):
        return self._redis

    async def initialize(self) -> None:
        """Connect to Redis and verify with PING."""
        if self._initialized:
            return

        if self._redis is None:
            try:
                import redis.asyncio as aioredis
            except ImportError:
                raise ImportError(
                    "Redis backend requires 'redis' package. "
                    "Install with: pip install redis"
                )

            self._redis = aioredis.from_url(
                self._url,
                max_connections=self._max_connections,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._connect_timeout,
                decode_responses=False,
            )

        try:
            await self._redis.ping()
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise CacheConnectionFault(self.name, str(e)) from e

        self._start_time = time.monotonic()
        self._initialized = True
        logger.info(f"Redis cache connected: {self._url}")

    async def shutdown(self) -> None:
        """Close Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        self._initialized = False

    def _fault(self, operation: str, error: Exception) -> CacheBackendFault:
        self._stats.errors += 1
        return CacheBackendFault(self.name, operation, str(error))

    async def get(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = await self._redis.get(key)
        except Exception as e:
            raise self._fault("get", e) from e

        if raw is None:
            self._stats.misses += 1
            return None

        self._stats.hits += 1
        return CacheEntry(key=key, value=self._serializer.deserialize(raw, key))

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        data = self._serializer.serialize(value, key)
        try:
            if ttl and ttl > 0:
                await self._redis.setex(key, ttl, data)
            else:
                await self._redis.set(key, data)
        except Exception as e:
            raise self._fault("set", e) from e
        self._stats.sets += 1

    async def delete(self, key: str) -> bool:
        try:
            removed = await self._redis.delete(key)
        except Exception as e:
            raise self._fault("delete", e) from e
        if removed:
            self._stats.deletes += 1
        return bool(removed)

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._redis.exists(key))
        except Exception as e:
            raise self._fault("exists", e) from e

    async def expire(self, key: str, ttl: int) -> bool:
        try:
            return bool(await self._redis.expire(key, ttl))
        except Exception as e:
            raise self._fault("expire", e) from e

    async def increment(self, key: str, delta: int = 1, ttl: Optional[int] = None) -> int:
        """INCRBY, setting the TTL when the counter is created."""
        try:
            value = await self._redis.incrby(key, delta)
            if ttl and value == delta:
                await self._redis.expire(key, ttl)
            return int(value)
        except Exception as e:
            raise self._fault("increment", e) from e

    async def keys(self, pattern: str = "*") -> List[str]:
        result = []
        try:
            async for key in self._redis.scan_iter(match=pattern, count=1000):
                result.append(key.decode("utf-8") if isinstance(key, bytes) else key)
        except Exception as e:
            raise self._fault("keys", e) from e
        return result

    async def clear(self) -> int:
        """Delete every key in the selected database."""
        try:
            count = await self._redis.dbsize()
            await self._redis.flushdb()
        except Exception as e:
            raise self._fault("clear", e) from e
        return int(count)

    async def stats(self) -> CacheStats:
        self._stats.uptime_seconds = time.monotonic() - self._start_time
        if self._redis is not None:
            try:
                self._stats.size = int(await self._redis.dbsize())
            except Exception as e:
                logger.debug(f"Redis DBSIZE failed: {e}")
        return self._stats
