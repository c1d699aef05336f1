"""
Socket Controller Decorators - declarative controller syntax.

- @Socket(path) - Declare a socket namespace
- @OnConnect() - Runs after the handshake was accepted
- @OnDisconnect() - Cleanup handler
- @Event(name) - Message handler
- @Subscribe(name) / @Unsubscribe(name) - Room subscription handlers
"""

from typing import Any, Callable, Optional, TypeVar

F = TypeVar('F', bound=Callable[..., Any])

DEFAULT_ERROR_MESSAGE = "Something went wrong"


class Socket:
    """
    Socket controller decorator.

    Example:
        @Socket("/socket")
        class ChatSocket(SocketController):
            ...
    """

    def __init__(
        self,
        path: str,
        *,
        allowed_origins: Optional[list[str]] = None,
        max_message_size: int = 65536,  # 64KB default
    ):
        """
        Args:
            path: URL path of the namespace
            allowed_origins: Whitelist of allowed origins
            max_message_size: Max inbound frame size in bytes
        """
        self.path = path
        self.allowed_origins = allowed_origins
        self.max_message_size = max_message_size

    def __call__(self, cls: type) -> type:
        cls.__socket_metadata__ = {
            'path': self.path,
            'allowed_origins': self.allowed_origins,
            'max_message_size': self.max_message_size,
        }
        return cls


class OnConnect:
    """
    Handshake handler decorator.

    Example:
        @OnConnect()
        async def on_connect(self, conn: Connection):
            await conn.send_event("connection-status", {"status": "connected"})
    """

    def __call__(self, func: F) -> F:
        func.__socket_handler__ = {
            'type': 'on_connect',
        }
        return func


class OnDisconnect:
    """
    Disconnect handler decorator.

    Example:
        @OnDisconnect()
        async def on_disconnect(self, conn: Connection, reason: Optional[str]):
            ...
    """

    def __call__(self, func: F) -> F:
        func.__socket_handler__ = {
            'type': 'on_disconnect',
        }
        return func


class Event:
    """
    Message event handler decorator.

    ``error_message`` is what the caller receives when the handler
    fails with anything but a public fault.

    Example:
        @Event("send-message", error_message="Failed to send message")
        async def send_message(self, conn: Connection, payload):
            ...
    """

    def __init__(self, event: str, *, error_message: str = DEFAULT_ERROR_MESSAGE):
        self.event = event
        self.error_message = error_message

    def __call__(self, func: F) -> F:
        func.__socket_handler__ = {
            'type': 'event',
            'event': self.event,
            'error_message': self.error_message,
        }
        return func


class Subscribe:
    """
    Room subscription handler.

    Example:
        @Subscribe("subscribe-to-location")
        async def subscribe(self, conn: Connection, payload):
            await conn.join(room)
    """

    def __init__(self, event: str, *, error_message: str = DEFAULT_ERROR_MESSAGE):
        self.event = event
        self.error_message = error_message

    def __call__(self, func: F) -> F:
        func.__socket_handler__ = {
            'type': 'subscribe',
            'event': self.event,
            'error_message': self.error_message,
        }
        return func


class Unsubscribe:
    """Room unsubscription handler."""

    def __init__(self, event: str, *, error_message: str = DEFAULT_ERROR_MESSAGE):
        self.event = event
        self.error_message = error_message

    def __call__(self, func: F) -> F:
        func.__socket_handler__ = {
            'type': 'unsubscribe',
            'event': self.event,
            'error_message': self.error_message,
        }
        return func
