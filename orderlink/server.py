"""
OrderLinkServer - wires configuration, stores, cache, authentication
and both socket namespaces together, with lifecycle management.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .auth import ConnectionAuthenticator, TokenCache, TokenKind, TokenManager
from .cache import CacheService, create_cache_service
from .chat.activation import ChatActivationStore
from .chat.notifications import NotificationFanout
from .chat.service import ChatService
from .chat.socket import ChatSocket
from .config import GatewayConfig, load_config
from .db import Database
from .location.service import LocationService
from .location.socket import LocationSocket
from .sockets import (
    InMemoryAdapter,
    LoggingMiddleware,
    MessageValidationMiddleware,
    MiddlewareChain,
    OriginGuard,
    RateLimitMiddleware,
    RedisAdapter,
    RoomBroadcaster,
    SocketRuntime,
    normalize_namespace,
)
from .stores import SQLStores


class OrderLinkServer:
    """
    Composition root.

    Integrates:
    - CacheService (tokens, chat activation, last positions, rate limits)
    - Stores (SQL over ``Database`` by default, or any injected set)
    - ConnectionAuthenticator for socket handshakes
    - SocketRuntime serving the chat and location namespaces

    Example:
        server = OrderLinkServer(load_config(["orderlink.yaml"]))
        server.run()
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        *,
        stores: Any = None,
        cache: Optional[CacheService] = None,
        adapter: Any = None,
    ):
        """
        Args:
            config: Validated configuration (default: ``load_config()``)
            stores: Store set with ``users``/``orders``/``messages``/
                ``notifications``/``locations`` (default: SQL stores)
            cache: Pre-built cache service
            adapter: Pre-built socket adapter
        """
        self.config = config or load_config()
        self.logger = logging.getLogger("orderlink.server")

        self.cache = cache or create_cache_service(self.config.cache)
        self.db: Optional[Database] = None
        if stores is None:
            self.db = Database(self.config.database.url)
            stores = SQLStores(self.db)
        self.stores = stores

        auth = self.config.auth
        self.tokens = TokenManager.from_config(auth)
        self.token_cache = TokenCache(self.cache)
        self.authenticator = ConnectionAuthenticator(
            self.tokens,
            self.token_cache,
            stores.users,
            scheme=auth.scheme,
            super_admin_email=auth.admin_email,
        )

        sockets = self.config.sockets
        if adapter is None:
            adapter = RedisAdapter(sockets.redis_url) if sockets.adapter == "redis" else InMemoryAdapter()
        self.adapter = adapter

        self.runtime = SocketRuntime(
            self.authenticator,
            adapter,
            admin_flag=auth.admin_flag,
            middleware=self._build_middleware(),
        )

        chat_namespace = normalize_namespace(sockets.chat_path)
        location_namespace = normalize_namespace(sockets.location_path)

        self.activation = ChatActivationStore(self.cache, ttl=self.config.chat.activation_ttl)
        self.fanout = NotificationFanout(
            stores.orders,
            stores.notifications,
            preview_length=self.config.chat.preview_length,
        )
        self.chat = ChatService(
            stores.messages,
            stores.orders,
            self.activation,
            self.fanout,
            RoomBroadcaster(adapter, chat_namespace),
        )
        self.locations = LocationService(
            stores.locations,
            self.cache,
            RoomBroadcaster(adapter, location_namespace),
            last_position_ttl=self.config.location.last_position_ttl,
        )

        guards = [OriginGuard(sockets.allowed_origins)] if sockets.allowed_origins else None
        self.runtime.register(
            ChatSocket(self.chat),
            path=chat_namespace,
            guards=guards,
            max_message_size=sockets.max_message_size,
        )
        self.runtime.register(
            LocationSocket(self.locations),
            path=location_namespace,
            guards=guards,
            max_message_size=sockets.max_message_size,
        )

        self._startup_complete = False
        self._startup_lock = asyncio.Lock()

        from .asgi import OrderLinkApp
        self.app = OrderLinkApp(self)

    def _build_middleware(self) -> MiddlewareChain:
        chain = MiddlewareChain()
        chain.add(LoggingMiddleware(log_payloads=self.config.debug))
        rate_limit = self.config.rate_limit
        if rate_limit.enabled:
            chain.add(RateLimitMiddleware(
                self.cache,
                max_events=rate_limit.max_events,
                window_seconds=rate_limit.window_seconds,
            ))
        chain.add(MessageValidationMiddleware(self.config.sockets.max_message_size))
        return chain

    async def startup(self):
        """
        Flow:
        1. Cache backend
        2. Database connection (SQL stores only)
        3. Socket adapter

        Idempotent.
        """
        async with self._startup_lock:
            if self._startup_complete:
                return

            self.logger.info("Starting OrderLink gateway...")
            await self.cache.initialize()
            if self.db is not None:
                await self.db.connect()
            await self.runtime.initialize()

            self._startup_complete = True
            self.logger.info(
                f"Gateway ready: chat on {self.config.sockets.chat_path}, "
                f"location on {self.config.sockets.location_path} "
                f"(adapter={self.config.sockets.adapter}, cache={self.config.cache.backend})"
            )

    async def shutdown(self):
        """Close sockets, then the adapter, database and cache. Safe to call twice."""
        if not self._startup_complete:
            return

        self.logger.info("Shutting down OrderLink gateway...")
        await self.runtime.shutdown()

        if self.db is not None:
            try:
                await self.db.disconnect()
            except Exception as e:
                self.logger.warning(f"Error disconnecting database: {e}")

        await self.cache.shutdown()
        self._startup_complete = False
        self.logger.info("Gateway stopped")

    async def issue_token(self, subject: str, *, admin: bool = False) -> str:
        """
        Sign a token and make it the subject's current token.

        Used by the CLI and tests; production tokens are issued by the
        login service that shares the cache.
        """
        kind = TokenKind.ADMIN if admin else TokenKind.ACCESS
        token = self.tokens.issue(kind, subject)
        if not await self.token_cache.remember(kind, subject, token, self.tokens.ttl_for(kind)):
            self.logger.warning(f"Token for {subject} could not be stored as current")
        return token

    def run(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        reload: Optional[bool] = None,
        log_level: Optional[str] = None,
    ):
        """
        Run the server with uvicorn. Startup and shutdown run through
        the ASGI lifespan protocol.
        """
        import uvicorn

        server = self.config.server
        host = host or server.host
        port = port or server.port
        reload = server.reload if reload is None else reload
        log_level = log_level or server.log_level

        logging.basicConfig(
            level=getattr(logging, log_level.upper()),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        )
        self.logger.info(f"Starting uvicorn server on {host}:{port}")

        if reload:
            # Reload needs an import string
            uvicorn.run(
                "orderlink.asgi:create_app",
                factory=True,
                host=host,
                port=port,
                reload=True,
                log_level=log_level,
            )
        else:
            uvicorn.run(self.app, host=host, port=port, log_level=log_level, lifespan="on")

    def get_asgi_app(self):
        """Get the ASGI application for external servers."""
        return self.app
