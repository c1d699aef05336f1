"""
Chat data model: messages, activation records, notifications.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def storage_timestamp(value: datetime) -> str:
    """Fixed-width UTC text that sorts chronologically."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class SenderType(str, Enum):
    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"


@dataclass
class ChatMessage:
    id: str
    order_id: str
    sender_id: str
    sender_type: str
    body: str
    image_url: Optional[str] = None
    is_read: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def new(
        cls,
        order_id: str,
        sender_id: str,
        sender_type: str,
        body: str,
        image_url: Optional[str] = None,
    ) -> "ChatMessage":
        now = utcnow()
        return cls(
            id=str(uuid.uuid4()),
            order_id=order_id,
            sender_id=sender_id,
            sender_type=sender_type,
            body=body,
            image_url=image_url,
            created_at=now,
            updated_at=now,
        )

    def to_wire(self, sender: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "senderId": self.sender_id,
            "senderType": self.sender_type,
            "message": self.body,
            "imageUrl": self.image_url,
            "isRead": self.is_read,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "sender": sender,
        }


@dataclass
class ChatActivationRecord:
    """Stored under ``chat:active:{order_id}``."""
    order_id: str
    activated_by: Dict[str, Any]
    activated_at: datetime = field(default_factory=utcnow)

    def to_cache(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "activatedBy": self.activated_by,
            "activatedAt": format_timestamp(self.activated_at),
        }

    @classmethod
    def from_cache(cls, order_id: str, data: Dict[str, Any]) -> "ChatActivationRecord":
        activated_at = data.get("activatedAt")
        return cls(
            order_id=data.get("orderId", order_id),
            activated_by=data.get("activatedBy") or {},
            activated_at=parse_timestamp(activated_at) if activated_at else utcnow(),
        )


class NotificationKind(str, Enum):
    CHAT_MESSAGE_RECEIVED = "chat_message_received"
    CHAT_ACTIVATED = "chat_activated"
    USER_LEFT_CHAT = "user_left_chat"


@dataclass
class Notification:
    kind: NotificationKind
    recipient_user_id: str
    actor_user_id: Optional[str]
    resource: str
    heading: str
    body: str
    read: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)
