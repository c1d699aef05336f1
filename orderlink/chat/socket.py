"""
Chat socket - order chat rooms, messages, typing and read state.

Every order chat lives in the ``order:{id}`` room of this namespace.
Joining a room needs no authorization; reading history, sending and
activating are checked per operation by ``ChatService``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from orderlink.faults import InfrastructureFault, InvalidStateFault
from orderlink.rooms import order_room
from orderlink.sockets import (
    Connection,
    Event,
    OnConnect,
    OnDisconnect,
    Socket,
    SocketController,
)
from .service import ChatService

logger = logging.getLogger("orderlink.chat.socket")

ORDER_ID_REQUIRED = "Order ID is required"


def order_id_from(payload: Any) -> str:
    """
    Accept ``"O1"``, ``17`` or ``{"orderId": "O1"}``.

    Raises:
        InvalidStateFault: No usable order id
    """
    if isinstance(payload, dict):
        payload = payload.get("orderId")
    if isinstance(payload, bool) or not isinstance(payload, (str, int)):
        raise InvalidStateFault(ORDER_ID_REQUIRED)
    order_id = str(payload).strip()
    if not order_id:
        raise InvalidStateFault(ORDER_ID_REQUIRED)
    return order_id


@Socket("/socket")
class ChatSocket(SocketController):

    def __init__(self, chat: ChatService):
        self.chat = chat

    @OnConnect()
    async def on_connect(self, conn: Connection):
        principal = conn.principal
        logger.info(f"User connected: {principal.id} ({principal.role.value})")
        await conn.send_event("connection-status", {
            "status": "connected",
            "userId": principal.id,
            "userType": principal.role.value,
        })

    @OnDisconnect()
    async def on_disconnect(self, conn: Connection, reason: Optional[str]):
        logger.info(f"User disconnected: {conn.principal.id} ({reason})")

    @Event("join-order-chat", error_message="Failed to join chat")
    async def join_order_chat(self, conn: Connection, payload: Any):
        order_id = order_id_from(payload)
        principal = conn.principal
        room = order_room(order_id)

        await conn.join(room)
        await self.publish_room(
            room,
            "user-joined",
            {"user": principal.to_wire(), "orderId": order_id},
            exclude_connection=conn.connection_id,
        )

        await self.chat.check_participant(principal, order_id, action="join")
        await self.chat.ensure_active(principal, order_id)

        messages = await self.chat.get_messages_by_order(order_id)
        await conn.send_event("previous-messages", messages)

        count = await self.chat.mark_messages_as_read(order_id, principal.id)
        if count > 0:
            await self.publish_room(room, "messages-read", {
                "orderId": order_id,
                "userId": principal.id,
                "count": count,
            })
        logger.info(f"User {principal.id} joined order chat: {order_id}")

    @Event("leave-order-chat", error_message="Failed to leave chat")
    async def leave_order_chat(self, conn: Connection, payload: Any):
        order_id = order_id_from(payload)
        principal = conn.principal
        room = order_room(order_id)

        await conn.leave(room)
        await self.publish_room(
            room,
            "user-left",
            {"user": principal.to_wire(), "orderId": order_id},
            exclude_connection=conn.connection_id,
        )
        await self.chat.user_left(principal, order_id)
        logger.info(f"User {principal.id} left order chat: {order_id}")

    @Event("send-message", error_message="Failed to send message")
    async def send_message(self, conn: Connection, payload: Any):
        if not isinstance(payload, dict):
            raise InvalidStateFault(ORDER_ID_REQUIRED)
        order_id = order_id_from(payload)
        image_url = payload.get("imageUrl")
        await self.chat.send_message(
            conn.principal,
            order_id,
            payload.get("message"),
            image_url if isinstance(image_url, str) else None,
        )

    @Event("typing", error_message="Failed to send typing status")
    async def typing(self, conn: Connection, payload: Any):
        order_id = order_id_from(payload)
        principal = conn.principal
        await self.publish_room(
            order_room(order_id),
            "user-typing",
            {
                "user": {"id": principal.id, "name": principal.display_name},
                "isTyping": isinstance(payload, dict) and bool(payload.get("isTyping")),
            },
            exclude_connection=conn.connection_id,
        )

    @Event("activate-chat", error_message="Failed to activate chat")
    async def activate_chat(self, conn: Connection, payload: Any):
        order_id = order_id_from(payload)
        await self.chat.check_participant(conn.principal, order_id, action="activate")
        if not await self.chat.activate_chat(conn.principal, order_id):
            raise InfrastructureFault("cache", "activate_chat", f"order {order_id}")

    @Event("mark-messages-read", error_message="Failed to mark messages as read")
    async def mark_messages_read(self, conn: Connection, payload: Any):
        order_id = order_id_from(payload)
        principal = conn.principal
        await self.chat.check_participant(principal, order_id, action="mark_read")

        count = await self.chat.mark_messages_as_read(order_id, principal.id)
        await self.publish_room(order_room(order_id), "messages-read", {
            "orderId": order_id,
            "userId": principal.id,
            "count": count,
        })

    @Event("get-unread-count", error_message="Failed to get unread count")
    async def get_unread_count(self, conn: Connection, payload: Any):
        order_id = None
        if isinstance(payload, dict) and payload.get("orderId") not in (None, ""):
            order_id = order_id_from(payload)
        elif isinstance(payload, (str, int)) and not isinstance(payload, bool) and str(payload).strip():
            order_id = order_id_from(payload)

        counts = await self.chat.get_unread_count(conn.principal.id, order_id)
        await conn.send_event("unread-count", counts.to_wire())
