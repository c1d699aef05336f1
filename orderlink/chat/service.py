"""
Chat service - message persistence, read state and activation.

Authorization is enforced per operation rather than at room join:
admins may act on any order, everyone else must be the order's
customer or assigned agent.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from orderlink.auth import Principal
from orderlink.faults import (
    AuthorizationFault,
    Fault,
    InfrastructureFault,
    InvalidStateFault,
    NotFoundFault,
)
from orderlink.rooms import order_room
from orderlink.sockets.broadcaster import RoomBroadcaster
from orderlink.stores.base import MessageRepository, OrderDirectory, UnreadCounts
from .activation import ChatActivationStore
from .models import ChatMessage
from .notifications import NotificationFanout

logger = logging.getLogger("orderlink.chat.service")

CHAT_NOT_ACTIVE = "Chat is not active for this order"
MESSAGE_REQUIRED = "Message content is required"


class ChatService:

    def __init__(
        self,
        messages: MessageRepository,
        orders: OrderDirectory,
        activation: ChatActivationStore,
        fanout: NotificationFanout,
        broadcaster: RoomBroadcaster,
    ):
        self.messages = messages
        self.orders = orders
        self.activation = activation
        self.fanout = fanout
        self.broadcaster = broadcaster

    # ── Authorization ────────────────────────────────────────────────

    async def check_participant(self, principal: Principal, order_id: str, action: str = "access") -> None:
        """
        Raises:
            NotFoundFault: Order does not exist
            AuthorizationFault: Principal is neither admin nor participant
        """
        if principal.is_admin:
            return
        participants = await self.orders.get_order_participants(order_id)
        if participants is None:
            raise NotFoundFault("Order", order_id)
        if principal.id not in participants.user_ids():
            logger.warning(f"{principal.role.value} {principal.id} denied {action} on order {order_id}")
            raise AuthorizationFault(resource=f"order:{order_id}", action=action)

    async def is_participant(self, principal: Principal, order_id: str) -> bool:
        try:
            await self.check_participant(principal, order_id)
        except (AuthorizationFault, NotFoundFault):
            return False
        return True

    # ── Messages ─────────────────────────────────────────────────────

    async def send_message(
        self,
        principal: Principal,
        order_id: str,
        body: Optional[str],
        image_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Persist a message, broadcast ``new-message`` to the order room
        (sender included) and notify the other participants.

        Returns:
            The message in wire shape

        Raises:
            InvalidStateFault: Chat inactive, or empty message
            AuthorizationFault: Principal is not a participant
            InfrastructureFault: Persistence failed
        """
        order_id = str(order_id)
        if not await self.activation.is_active(order_id):
            raise InvalidStateFault(CHAT_NOT_ACTIVE)

        await self.check_participant(principal, order_id, action="send_message")

        text = body if isinstance(body, str) else ""
        if not text.strip() and not image_url:
            raise InvalidStateFault(MESSAGE_REQUIRED)

        message = ChatMessage.new(
            order_id=order_id,
            sender_id=principal.id,
            sender_type=principal.sender_type,
            body=text,
            image_url=image_url or None,
        )
        try:
            saved, sender = await self.messages.create_with_sender(message)
        except Fault as e:
            logger.error(f"Failed to persist message for order {order_id}: {e}")
            raise InfrastructureFault("database", "create_message", e.message) from e
        except Exception as e:
            logger.error(f"Failed to persist message for order {order_id}: {e}", exc_info=True)
            raise InfrastructureFault("database", "create_message", str(e)) from e

        wire = saved.to_wire(sender.to_wire() if sender else None)
        await self.broadcaster.emit_to_room(order_room(order_id), "new-message", wire)
        await self.fanout.message_sent(order_id, principal, wire)
        logger.info(f"Message sent in order {order_id} by {principal.id}")
        return wire

    async def get_messages_by_order(self, order_id: str) -> List[Dict[str, Any]]:
        """All messages of the order, oldest first, in wire shape."""
        rows = await self.messages.list_by_order(str(order_id))
        return [message.to_wire(sender.to_wire() if sender else None) for message, sender in rows]

    async def mark_messages_as_read(self, order_id: str, reader_id: str) -> int:
        """
        Flip every unread message of the order not written by the reader.

        When anything changed, the reader's message notifications for
        the order are marked read too (best-effort).
        """
        count = await self.messages.mark_read(str(order_id), reader_id)
        if count > 0:
            await self.fanout.mark_chat_read(reader_id, str(order_id))
        return count

    async def get_unread_count(self, reader_id: str, order_id: Optional[str] = None) -> UnreadCounts:
        if order_id is not None:
            counts = await self.messages.count_unread(reader_id, [str(order_id)])
            return UnreadCounts(total=counts.get(str(order_id), 0))

        order_ids = await self.orders.get_orders_for_user(reader_id)
        counts = await self.messages.count_unread(reader_id, order_ids)
        by_order = {oid: n for oid, n in counts.items() if n > 0}
        return UnreadCounts(total=sum(by_order.values()), by_order=by_order)

    # ── Activation ───────────────────────────────────────────────────

    async def activate_chat(self, principal: Principal, order_id: str) -> bool:
        """
        Activate (or re-activate) the chat, tell the room and notify
        the other participants. False when the activation write failed.
        """
        order_id = str(order_id)
        activated_by = principal.to_wire()
        if not await self.activation.activate(order_id, activated_by):
            return False
        await self.broadcaster.emit_to_room(
            order_room(order_id),
            "chat-activated",
            {"orderId": order_id, "activatedBy": activated_by},
        )
        await self.fanout.chat_activated(order_id, principal)
        return True

    async def ensure_active(self, principal: Principal, order_id: str) -> bool:
        """Activate on behalf of ``principal`` unless already live. True if it activated."""
        if await self.activation.is_active(str(order_id)):
            return False
        return await self.activate_chat(principal, order_id)

    async def user_left(self, principal: Principal, order_id: str) -> int:
        return await self.fanout.user_left(str(order_id), principal)
