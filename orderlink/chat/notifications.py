"""
Notification fan-out for chat events.

Every message, activation and leave produces one notification per
order participant other than the actor, written in a single bulk call.
Fan-out runs after the triggering action has succeeded and never fails
it: errors are logged and dropped.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from orderlink.auth import Principal
from orderlink.stores.base import NotificationSink, OrderDirectory
from .models import Notification, NotificationKind, format_timestamp

logger = logging.getLogger("orderlink.chat.notifications")

DEFAULT_PREVIEW_LENGTH = 50
ELLIPSIS = "..."


def message_preview(body: Optional[str], limit: int = DEFAULT_PREVIEW_LENGTH) -> str:
    """Bodies longer than ``limit`` are cut to ``limit`` characters, ellipsis included."""
    body = body or ""
    if len(body) <= limit:
        return body
    return body[: limit - len(ELLIPSIS)] + ELLIPSIS


class NotificationFanout:

    def __init__(
        self,
        orders: OrderDirectory,
        sink: NotificationSink,
        *,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
    ):
        self.orders = orders
        self.sink = sink
        self.preview_length = preview_length

    async def recipients(self, order_id: str, actor_id: str) -> List[Tuple[str, str]]:
        """
        ``(user_id, role)`` for every participant except the actor.

        A missing order or failed lookup yields no recipients.
        """
        try:
            participants = await self.orders.get_order_participants(order_id)
        except Exception as e:
            logger.error(f"Participant lookup failed for order {order_id}: {e}")
            return []
        if participants is None:
            logger.warning(f"Order {order_id} not found for notification")
            return []

        result = []
        customer_id = participants.customer.id if participants.customer else participants.customer_id
        if customer_id and customer_id != actor_id:
            result.append((customer_id, "customer"))
        # The raw foreign key covers orders whose agent relation was not loaded
        agent_id = participants.agent.id if participants.agent else participants.agent_id
        if agent_id and agent_id != actor_id and agent_id != customer_id:
            result.append((agent_id, "agent"))
        return result

    async def message_sent(
        self,
        order_id: str,
        sender: Principal,
        message: Dict[str, Any],
    ) -> int:
        """``chat_message_received`` for a new message in wire shape."""
        sender_details = message.get("sender") or {}
        sender_name = (
            f"{sender_details.get('firstName', '')} {sender_details.get('lastName', '')}".strip()
            or sender.display_name
            or "User"
        )
        preview = message_preview(message.get("message"), self.preview_length)
        return await self._fanout(
            order_id,
            sender,
            NotificationKind.CHAT_MESSAGE_RECEIVED,
            heading=f"New message from {sender_name}",
            body=preview,
            metadata=lambda role: {
                "messageId": message.get("id"),
                "recipientType": role,
                "senderName": sender_name,
                "messagePreview": preview,
                "timestamp": format_timestamp(datetime.now(timezone.utc)),
            },
        )

    async def chat_activated(self, order_id: str, actor: Principal) -> int:
        return await self._fanout(
            order_id,
            actor,
            NotificationKind.CHAT_ACTIVATED,
            heading="Chat Activated",
            body=f"Chat for order {order_id} has been activated by {actor.display_name}",
        )

    async def user_left(self, order_id: str, actor: Principal) -> int:
        return await self._fanout(
            order_id,
            actor,
            NotificationKind.USER_LEFT_CHAT,
            heading="User Left Chat",
            body=f"{actor.display_name} ({actor.sender_type}) has left the chat for order {order_id}",
        )

    async def mark_chat_read(self, user_id: str, order_id: str) -> int:
        """Mark the reader's unread message notifications for the order as read."""
        try:
            return await self.sink.mark_read(user_id, NotificationKind.CHAT_MESSAGE_RECEIVED, str(order_id))
        except Exception as e:
            logger.error(f"Error updating chat notification status for {user_id} on order {order_id}: {e}")
            return 0

    async def _fanout(
        self,
        order_id: str,
        actor: Principal,
        kind: NotificationKind,
        *,
        heading: str,
        body: str,
        metadata=None,
    ) -> int:
        try:
            recipients = await self.recipients(order_id, actor.id)
            if not recipients:
                return 0
            notifications = [
                Notification(
                    kind=kind,
                    recipient_user_id=user_id,
                    actor_user_id=actor.id,
                    resource=str(order_id),
                    heading=heading,
                    body=body,
                    metadata=metadata(role) if metadata else {},
                )
                for user_id, role in recipients
            ]
            await self.sink.create_notifications(notifications)
            logger.debug(f"Created {len(notifications)} {kind.value} notifications for order {order_id}")
            return len(notifications)
        except Exception as e:
            logger.error(f"Error creating {kind.value} notifications for order {order_id}: {e}")
            return 0
