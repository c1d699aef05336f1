"""
Socket adapters - room membership and cross-worker fanout.
"""

from .base import Adapter, RoomInfo
from .inmemory import InMemoryAdapter
from .redis import RedisAdapter

__all__ = [
    "Adapter",
    "RoomInfo",
    "InMemoryAdapter",
    "RedisAdapter",
]
