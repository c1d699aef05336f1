"""
Socket Middleware - per-message processing pipeline.

Each middleware is ``async (conn, envelope, next) -> result``.
"""

from __future__ import annotations

from typing import Callable, Awaitable, Optional, TYPE_CHECKING, Any
import json
import logging
import time

from .faults import WS_PAYLOAD_TOO_LARGE, WS_RATE_LIMIT_EXCEEDED

if TYPE_CHECKING:
    from orderlink.cache import CacheService
    from .connection import Connection
    from .envelope import MessageEnvelope

logger = logging.getLogger("orderlink.sockets.middleware")


# Type aliases (using Any to avoid runtime circular import)
MessageHandler = Callable[[Any, Any], Awaitable[Any]]
SocketMiddleware = Callable[[Any, Any, MessageHandler], Awaitable[Any]]


class MessageValidationMiddleware:
    """Rejects payloads larger than ``max_payload_size`` bytes."""

    def __init__(self, max_payload_size: int = 32768):
        self.max_payload_size = max_payload_size

    async def __call__(
        self,
        conn: Connection,
        envelope: MessageEnvelope,
        next: MessageHandler,
    ) -> Any:
        payload_size = len(json.dumps(envelope.payload, default=str).encode("utf-8"))
        if payload_size > self.max_payload_size:
            raise WS_PAYLOAD_TOO_LARGE(payload_size, self.max_payload_size)
        return await next(conn, envelope)


class RateLimitMiddleware:
    """
    Fixed-window rate limiting per principal, shared through the cache.

    The counter lives at ``rate-limit:{namespace}:{principal}:{window}``
    and expires with the window, so every worker sees the same count.
    A cache failure lets the event through.
    """

    def __init__(
        self,
        cache: CacheService,
        max_events: int = 60,
        window_seconds: int = 60,
    ):
        self.cache = cache
        self.max_events = max_events
        self.window_seconds = window_seconds

    def _key(self, conn: Connection) -> str:
        subject = conn.principal.id if conn.principal else conn.connection_id
        window = int(time.time() // self.window_seconds)
        namespace = conn.namespace.strip("/") or "root"
        return f"rate-limit:{namespace}:{subject}:{window}"

    async def __call__(
        self,
        conn: Connection,
        envelope: MessageEnvelope,
        next: MessageHandler,
    ) -> Any:
        count = await self.cache.incr(self._key(conn), ttl=self.window_seconds)
        if count is None:
            # Fail open
            logger.warning(f"Rate limiter unavailable, allowing {envelope.event} from {conn.connection_id}")
        elif count > self.max_events:
            logger.info(f"Rate limit hit by {conn.connection_id} on {envelope.event} ({count}/{self.max_events})")
            raise WS_RATE_LIMIT_EXCEEDED(self.max_events)
        return await next(conn, envelope)


class LoggingMiddleware:
    """Logs every inbound event at debug level."""

    def __init__(self, log_payloads: bool = False):
        self.log_payloads = log_payloads

    async def __call__(
        self,
        conn: Connection,
        envelope: MessageEnvelope,
        next: MessageHandler,
    ) -> Any:
        principal_id = conn.principal.id if conn.principal else "anonymous"

        if self.log_payloads:
            logger.debug(
                f"Message from {principal_id} ({conn.connection_id}): "
                f"event={envelope.event} payload={envelope.payload}"
            )
        else:
            logger.debug(
                f"Message from {principal_id} ({conn.connection_id}): "
                f"event={envelope.event}"
            )

        return await next(conn, envelope)


class MiddlewareChain:
    """
    Middleware chain builder.

    Composes multiple middleware into a single handler.
    """

    def __init__(self):
        self.middlewares: list[SocketMiddleware] = []

    def add(self, middleware: SocketMiddleware):
        self.middlewares.append(middleware)

    def build(self, final_handler: MessageHandler) -> MessageHandler:
        handler = final_handler

        # Wrap in reverse order
        for middleware in reversed(self.middlewares):
            handler = self._wrap(middleware, handler)

        return handler

    def _wrap(
        self,
        middleware: SocketMiddleware,
        next_handler: MessageHandler,
    ) -> MessageHandler:
        async def wrapped(conn: Connection, envelope: MessageEnvelope):
            return await middleware(conn, envelope, next_handler)

        return wrapped
