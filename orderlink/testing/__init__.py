"""
OrderLink Testing - helpers for exercising the gateway in process.
"""

from .cache import MockCacheBackend
from .client import WebSocketTestClient, http_get
from .server import TEST_SUPER_ADMIN, TestServer, build_test_config
from .sockets import EmittedEvent, FakeBroadcaster

__all__ = [
    "MockCacheBackend",
    "WebSocketTestClient",
    "http_get",
    "TEST_SUPER_ADMIN",
    "TestServer",
    "build_test_config",
    "EmittedEvent",
    "FakeBroadcaster",
]
