"""
Socket Runtime - ASGI websocket handling and connection management.

One task per connection. Frames from a connection are handled one at
a time in arrival order; different connections progress independently.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from urllib.parse import parse_qsl
import inspect
import logging
import os
import socket
import uuid

from orderlink.auth import ConnectionAuthenticator, Handshake
from orderlink.faults import AuthenticationFault, Fault

from .adapters import Adapter, InMemoryAdapter
from .connection import Connection, ConnectionScope
from .controller import SocketController
from .envelope import JSONCodec, MessageEnvelope
from .faults import WS_PAYLOAD_TOO_LARGE, WS_UNSUPPORTED_EVENT
from .guards import OriginGuard, SocketGuard
from .middleware import MessageHandler, MiddlewareChain

logger = logging.getLogger("orderlink.sockets.runtime")

CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_UNSUPPORTED = 1003
CLOSE_INTERNAL_ERROR = 1011
CLOSE_FORBIDDEN = 4403


@dataclass
class HandlerSpec:
    """A bound ``@Event`` / ``@Subscribe`` / ``@Unsubscribe`` method."""
    event: str
    method: Callable[..., Awaitable[Any]]
    error_message: str
    kind: str = "event"


@dataclass
class RouteMetadata:
    """Socket route metadata extracted from a controller."""
    namespace: str
    path: str
    controller: SocketController
    handlers: Dict[str, HandlerSpec]
    on_connect: Optional[Callable[..., Awaitable[Any]]] = None
    on_disconnect: Optional[Callable[..., Awaitable[Any]]] = None
    guards: List[SocketGuard] = field(default_factory=list)
    max_message_size: int = 65536


def normalize_namespace(path: str) -> str:
    """'socket/', '/socket' and '/socket/' all name '/socket'."""
    return "/" + path.strip("/")


class SocketRouter:
    """Matches request paths to registered namespaces."""

    def __init__(self):
        self.routes: Dict[str, RouteMetadata] = {}

    _normalize = staticmethod(normalize_namespace)

    def register(self, metadata: RouteMetadata):
        path = self._normalize(metadata.path)
        if path in self.routes:
            logger.warning(f"Socket path {path} already registered, overwriting")
        self.routes[path] = metadata
        logger.info(f"Registered socket namespace: {path}")

    def match(self, path: str) -> Optional[RouteMetadata]:
        return self.routes.get(self._normalize(path))


def _collect_handlers(controller: SocketController) -> tuple[Dict[str, HandlerSpec], Optional[Callable], Optional[Callable]]:
    handlers: Dict[str, HandlerSpec] = {}
    on_connect = on_disconnect = None

    for name, method in inspect.getmembers(controller, predicate=inspect.ismethod):
        metadata = getattr(method, "__socket_handler__", None)
        if not metadata:
            continue
        kind = metadata.get("type")
        if kind == "on_connect":
            on_connect = method
        elif kind == "on_disconnect":
            on_disconnect = method
        elif kind in ("event", "subscribe", "unsubscribe"):
            event = metadata["event"]
            if event in handlers:
                raise ValueError(f"{type(controller).__name__} registers '{event}' twice")
            handlers[event] = HandlerSpec(
                event=event,
                method=method,
                error_message=metadata["error_message"],
                kind=kind,
            )

    return handlers, on_connect, on_disconnect


class SocketRuntime:
    """
    Socket runtime.

    Manages:
    - Handshake authentication (rejects with close code 4401)
    - Connection lifecycle
    - Message routing through the middleware chain
    - Turning handler failures into caller-scoped ``error`` events

    Example:
        runtime = SocketRuntime(authenticator, adapter=InMemoryAdapter())
        runtime.register(ChatSocket(chat_service))
        await runtime.initialize()
        ...
        await runtime.handle_websocket(scope, receive, send)
    """

    def __init__(
        self,
        authenticator: ConnectionAuthenticator,
        adapter: Optional[Adapter] = None,
        *,
        admin_flag: str = "x-iadmin-access",
        middleware: Optional[MiddlewareChain] = None,
        worker_id: Optional[str] = None,
    ):
        self.authenticator = authenticator
        self.adapter = adapter or InMemoryAdapter()
        self.admin_flag = admin_flag
        self.middleware = middleware or MiddlewareChain()
        self.worker_id = worker_id or f"{socket.gethostname()}:{os.getpid()}"
        self.router = SocketRouter()

        self.connections: Dict[str, Connection] = {}
        self._closers: Dict[str, Callable[[int, str], Awaitable[None]]] = {}
        self.codec = JSONCodec()
        self._initialized = False

    # ── Registration & lifecycle ─────────────────────────────────────

    def register(
        self,
        controller: SocketController,
        *,
        path: Optional[str] = None,
        guards: Optional[List[SocketGuard]] = None,
        max_message_size: Optional[int] = None,
    ) -> RouteMetadata:
        """
        Register a controller decorated with ``@Socket``.

        ``path`` and ``max_message_size`` override the decorator's values.
        """
        meta = getattr(type(controller), "__socket_metadata__", None)
        if meta is None:
            raise TypeError(f"{type(controller).__name__} is missing the @Socket decorator")

        namespace = normalize_namespace(path or meta["path"])
        handlers, on_connect, on_disconnect = _collect_handlers(controller)

        route_guards = list(guards or [])
        if meta.get("allowed_origins"):
            route_guards.append(OriginGuard(meta["allowed_origins"]))

        controller.namespace = namespace
        controller.adapter = self.adapter

        metadata = RouteMetadata(
            namespace=namespace,
            path=namespace,
            controller=controller,
            handlers=handlers,
            on_connect=on_connect,
            on_disconnect=on_disconnect,
            guards=route_guards,
            max_message_size=max_message_size or meta.get("max_message_size", 65536),
        )
        self.router.register(metadata)
        return metadata

    async def initialize(self):
        if self._initialized:
            return
        await self.adapter.initialize()
        self._initialized = True
        logger.info("Socket runtime initialized")

    async def shutdown(self):
        for conn in list(self.connections.values()):
            closer = self._closers.get(conn.connection_id)
            if closer:
                try:
                    await closer(CLOSE_GOING_AWAY, "server shutdown")
                except Exception as e:
                    logger.debug(f"Close frame to {conn.connection_id} failed: {e}")
            await self._disconnect_connection(conn, "server shutdown")

        await self.adapter.shutdown()
        self._initialized = False
        logger.info("Socket runtime shut down")

    # ── ASGI entry point ─────────────────────────────────────────────

    async def handle_websocket(self, scope: dict, receive: Callable, send: Callable):
        message = await receive()
        if message["type"] != "websocket.connect":
            return

        route = self.router.match(scope.get("path", "/"))
        if route is None:
            await send({
                "type": "websocket.close",
                "code": CLOSE_UNSUPPORTED,
                "reason": "No matching socket namespace",
            })
            return

        try:
            conn = await self._perform_handshake(scope, send, route)
        except AuthenticationFault as e:
            logger.warning(f"Handshake rejected on {route.path}: {e.message}")
            await send({
                "type": "websocket.close",
                "code": e.ws_close_code,
                "reason": e.message[:123],  # Max 123 bytes
            })
            return
        except Fault as e:
            logger.warning(f"Handshake refused on {route.path}: {e.message}")
            await send({
                "type": "websocket.close",
                "code": e.metadata.get("ws_close_code", CLOSE_FORBIDDEN),
                "reason": e.message[:123],
            })
            return
        except Exception as e:
            logger.error(f"Handshake error on {route.path}: {e}", exc_info=True)
            await send({"type": "websocket.close", "code": CLOSE_INTERNAL_ERROR})
            return

        await send({"type": "websocket.accept"})
        conn.mark_connected()
        self._register_delivery(conn)

        if route.on_connect:
            try:
                await route.on_connect(conn)
            except Exception as e:
                logger.error(f"OnConnect handler failed for {conn.connection_id}: {e}", exc_info=True)
                await send({"type": "websocket.close", "code": CLOSE_INTERNAL_ERROR})
                await self._disconnect_connection(conn, "on_connect failed")
                return

        await self._message_loop(conn, route, receive)

    async def _perform_handshake(self, scope: dict, send: Callable, route: RouteMetadata) -> Connection:
        headers = {
            k.decode("latin-1").lower(): v.decode("latin-1")
            for k, v in scope.get("headers", [])
        }
        query_params = dict(parse_qsl(scope.get("query_string", b"").decode("latin-1")))

        conn_scope = ConnectionScope(
            namespace=route.namespace,
            path=scope.get("path", "/"),
            query_params=query_params,
            headers=headers,
        )

        handshake = Handshake.from_request(headers, query_params, admin_flag=self.admin_flag)
        principal, token = await self.authenticator.authenticate(handshake)

        for guard in route.guards:
            await guard.check_handshake(conn_scope, principal)

        connection_id = str(uuid.uuid4())

        async def send_func(data: str):
            await send({
                "type": "websocket.send",
                "text": data,
            })

        async def close_func(code: int, reason: str):
            await send({"type": "websocket.close", "code": code, "reason": reason[:123]})

        conn = Connection(
            connection_id=connection_id,
            namespace=route.namespace,
            scope=conn_scope,
            adapter=self.adapter,
            send_func=send_func,
            principal=principal,
            token=token,
        )
        self._closers[connection_id] = close_func

        logger.info(
            f"Handshake accepted: {connection_id} ({route.namespace}) "
            f"for {principal.role.value} {principal.id}"
        )
        return conn

    def _register_delivery(self, conn: Connection):
        self.connections[conn.connection_id] = conn
        self.adapter.register_send_callback(conn.namespace, conn.connection_id, conn.send_raw)

    # ── Message loop ─────────────────────────────────────────────────

    async def _message_loop(self, conn: Connection, route: RouteMetadata, receive: Callable):
        await self.adapter.register_connection(
            namespace=conn.namespace,
            connection_id=conn.connection_id,
            worker_id=self.worker_id,
        )
        pipeline = self.middleware.build(self._dispatcher(route))
        reason = "server closed"

        try:
            while conn.is_connected:
                message = await receive()

                if message["type"] == "websocket.receive":
                    data = message.get("text")
                    if data is None:
                        data = message.get("bytes") or b""
                    if data:
                        conn.record_received(len(data))
                        await self._handle_message(conn, route, pipeline, data)

                elif message["type"] == "websocket.disconnect":
                    reason = f"client disconnect (code {message.get('code', CLOSE_NORMAL)})"
                    break

        except Exception as e:
            logger.error(f"Message loop error on {conn.connection_id}: {e}", exc_info=True)
            reason = f"error: {e}"
        finally:
            await self._disconnect_connection(conn, reason)

    async def _handle_message(
        self,
        conn: Connection,
        route: RouteMetadata,
        pipeline: MessageHandler,
        data: Any,
    ):
        if len(data) > route.max_message_size:
            await conn.send_error(WS_PAYLOAD_TOO_LARGE(len(data), route.max_message_size).message)
            return

        try:
            envelope = self.codec.decode(data)
        except Fault as e:
            logger.info(f"Undecodable frame from {conn.connection_id}: {e.message}")
            await conn.send_error(e.message)
            return

        spec = route.handlers.get(envelope.event)
        if spec is None:
            logger.warning(f"No handler for event: {envelope.event}")
            await conn.send_error(WS_UNSUPPORTED_EVENT(envelope.event).message)
            return

        try:
            await pipeline(conn, envelope)
        except Fault as e:
            logger.log(e.severity.log_level, f"{envelope.event} from {conn.connection_id} failed: {e}")
            await conn.send_error(e.client_message(spec.error_message))
        except Exception as e:
            logger.error(f"{envelope.event} handler error on {conn.connection_id}: {e}", exc_info=True)
            await conn.send_error(spec.error_message)

    def _dispatcher(self, route: RouteMetadata) -> MessageHandler:
        async def dispatch(conn: Connection, envelope: MessageEnvelope):
            for guard in route.guards:
                await guard.check_message(conn, envelope)
            return await route.handlers[envelope.event].method(conn, envelope.payload)

        return dispatch

    # ── Teardown ─────────────────────────────────────────────────────

    async def _disconnect_connection(self, conn: Connection, reason: str):
        if conn.connection_id not in self.connections:
            return

        conn.mark_closing()
        route = self.router.match(conn.namespace)

        if route and route.on_disconnect:
            try:
                await route.on_disconnect(conn, reason)
            except Exception as e:
                logger.error(f"OnDisconnect handler error: {e}", exc_info=True)

        try:
            await conn.leave_all()
            await self.adapter.unregister_connection(conn.namespace, conn.connection_id)
        except Exception as e:
            logger.warning(f"Adapter cleanup for {conn.connection_id} failed: {e}")
        finally:
            self.adapter.unregister_send_callback(conn.namespace, conn.connection_id)
            self.connections.pop(conn.connection_id, None)
            self._closers.pop(conn.connection_id, None)
            conn.mark_closed()

        logger.info(f"Connection closed: {conn.connection_id} ({reason})")
