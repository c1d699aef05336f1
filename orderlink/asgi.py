"""
ASGI adapter - websocket upgrades go to the socket runtime, a health
check and 404s cover HTTP, and lifespan drives server startup/shutdown.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Optional
import json
import logging

if TYPE_CHECKING:
    from .config import GatewayConfig
    from .server import OrderLinkServer


class OrderLinkApp:
    """ASGI application for one ``OrderLinkServer``."""

    __slots__ = ("server", "logger")

    def __init__(self, server: OrderLinkServer):
        self.server = server
        self.logger = logging.getLogger("orderlink.asgi")

    async def __call__(self, scope: dict, receive: Callable, send: Callable):
        scope_type = scope["type"]
        if scope_type == "http":
            await self.handle_http(scope, receive, send)
        elif scope_type == "websocket":
            await self.handle_websocket(scope, receive, send)
        elif scope_type == "lifespan":
            await self.handle_lifespan(scope, receive, send)

    async def handle_http(self, scope: dict, receive: Callable, send: Callable):
        path = scope.get("path", "/").rstrip("/") or "/"
        method = scope.get("method", "GET")

        if path == "/health" and method in ("GET", "HEAD"):
            await self._send_json(send, 200, {"status": "ok"})
        else:
            await self._send_json(send, 404, {"error": "Not found", "path": scope.get("path", "/")})

    async def _send_json(self, send: Callable, status: int, body: Any):
        payload = json.dumps(body).encode("utf-8")
        await send({
            "type": "http.response.start",
            "status": status,
            "headers": [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(payload)).encode("latin-1")),
            ],
        })
        await send({"type": "http.response.body", "body": payload})

    async def handle_websocket(self, scope: dict, receive: Callable, send: Callable):
        await self.server.runtime.handle_websocket(scope, receive, send)

    async def handle_lifespan(self, scope: dict, receive: Callable, send: Callable):
        """Handle ASGI lifespan events."""
        while True:
            message = await receive()

            if message["type"] == "lifespan.startup":
                try:
                    await self.server.startup()
                    await send({"type": "lifespan.startup.complete"})
                except Exception as e:
                    self.logger.error(f"Startup error: {e}", exc_info=True)
                    await send({"type": "lifespan.startup.failed", "message": str(e)})
                    raise

            elif message["type"] == "lifespan.shutdown":
                try:
                    await self.server.shutdown()
                    await send({"type": "lifespan.shutdown.complete"})
                except Exception as e:
                    self.logger.error(f"Shutdown error: {e}", exc_info=True)
                    await send({"type": "lifespan.shutdown.failed", "message": str(e)})
                break


def create_app(config: Optional[GatewayConfig] = None) -> OrderLinkApp:
    """Application factory (``uvicorn orderlink.asgi:create_app --factory``)."""
    from .server import OrderLinkServer

    return OrderLinkServer(config).app
