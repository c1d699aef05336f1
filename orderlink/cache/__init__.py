"""
OrderLink Cache - shared key/value store with TTLs.

Backends:
- MemoryBackend: single process, tests and development
- RedisBackend: shared across gateway instances
"""

from .core import CacheBackend, CacheEntry, CacheStats
from .service import CacheService
from .backends import MemoryBackend, RedisBackend
from .faults import CacheFault, CacheBackendFault, CacheConnectionFault, CacheSerializationFault
from .key_builder import DefaultKeyBuilder
from .serializers import JsonCacheSerializer


def create_cache_service(config) -> CacheService:
    """Build a CacheService for a ``CacheConfig``."""
    if config.backend == "redis":
        backend = RedisBackend(url=config.redis_url)
    else:
        backend = MemoryBackend(max_size=config.max_size)
    return CacheService(backend, config)


__all__ = [
    "CacheBackend",
    "CacheEntry",
    "CacheStats",
    "CacheService",
    "MemoryBackend",
    "RedisBackend",
    "CacheFault",
    "CacheBackendFault",
    "CacheConnectionFault",
    "CacheSerializationFault",
    "DefaultKeyBuilder",
    "JsonCacheSerializer",
    "create_cache_service",
]
