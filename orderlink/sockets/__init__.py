"""
OrderLink Sockets - authenticated websocket namespaces with rooms.

Controllers are declared with decorators and registered on a
``SocketRuntime``; room fanout goes through an adapter (in-memory for a
single worker, Redis for several).
"""

from .envelope import MessageEnvelope, MessageType, JSONCodec
from .connection import Connection, ConnectionScope, ConnectionState
from .controller import SocketController
from .decorators import Socket, OnConnect, OnDisconnect, Event, Subscribe, Unsubscribe
from .guards import SocketGuard, OriginGuard
from .middleware import (
    LoggingMiddleware,
    MessageValidationMiddleware,
    MiddlewareChain,
    RateLimitMiddleware,
)
from .broadcaster import RoomBroadcaster
from .adapters import Adapter, InMemoryAdapter, RedisAdapter, RoomInfo
from .runtime import SocketRuntime, SocketRouter, RouteMetadata, HandlerSpec, normalize_namespace
from .faults import SocketFault

__all__ = [
    "MessageEnvelope",
    "MessageType",
    "JSONCodec",
    "Connection",
    "ConnectionScope",
    "ConnectionState",
    "SocketController",
    "Socket",
    "OnConnect",
    "OnDisconnect",
    "Event",
    "Subscribe",
    "Unsubscribe",
    "SocketGuard",
    "OriginGuard",
    "LoggingMiddleware",
    "MessageValidationMiddleware",
    "MiddlewareChain",
    "RateLimitMiddleware",
    "RoomBroadcaster",
    "Adapter",
    "InMemoryAdapter",
    "RedisAdapter",
    "RoomInfo",
    "SocketRuntime",
    "SocketRouter",
    "RouteMetadata",
    "HandlerSpec",
    "normalize_namespace",
    "SocketFault",
]
