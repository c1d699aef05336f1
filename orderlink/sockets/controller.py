"""
Socket Controller - base class for socket controllers.

Provides:
- Lifecycle hooks (on_connect, on_disconnect)
- Message handling (event handlers)
- Room publishing (publish_room)
"""

from __future__ import annotations

from typing import Any, Optional, TYPE_CHECKING
import logging

from .envelope import MessageEnvelope, MessageType

if TYPE_CHECKING:
    from .connection import Connection
    from .adapters.base import Adapter

logger = logging.getLogger("orderlink.sockets.controller")


class SocketController:
    """
    Base class for socket controllers.

    ``namespace`` and ``adapter`` are bound by the runtime when the
    controller is registered.

    Example:
        @Socket("/socket")
        class ChatSocket(SocketController):
            def __init__(self, chat: ChatService):
                self.chat = chat

            @Event("typing")
            async def typing(self, conn: Connection, payload):
                await self.publish_room(
                    order_room(payload["orderId"]),
                    "user-typing",
                    {...},
                    exclude_connection=conn.connection_id,
                )
    """

    namespace: Optional[str] = None
    adapter: Optional[Adapter] = None

    async def publish_room(
        self,
        room: str,
        event: str,
        payload: Any,
        *,
        exclude_connection: Optional[str] = None,
    ):
        """Publish message to all connections in a room."""
        if not self.namespace or not self.adapter:
            logger.warning(f"Cannot publish {event} to {room}: controller not registered")
            return

        envelope = MessageEnvelope(
            type=MessageType.EVENT,
            event=event,
            payload=payload,
        )
        await self.adapter.publish(
            namespace=self.namespace,
            room=room,
            envelope=envelope,
            exclude_connection=exclude_connection,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(namespace={self.namespace})"
