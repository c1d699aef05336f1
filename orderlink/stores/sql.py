"""
SQL collaborator stores over ``orderlink.db.Database``.

Statements use ``?`` placeholders; the engine adapts them per backend.
Booleans come back as ``0/1`` from SQLite and are normalised with
``bool()``. Timestamps are ISO text (see ``storage_timestamp``).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from orderlink.chat.models import (
    ChatMessage,
    Notification,
    NotificationKind,
    parse_timestamp,
    storage_timestamp,
    utcnow,
)
from orderlink.db import Database
from orderlink.location.models import LocationSample
from .base import (
    AdminRecord,
    OrderParticipants,
    SenderDetails,
    UserRecord,
)

logger = logging.getLogger("orderlink.stores.sql")

_USER_COLUMNS = "id, first_name, last_name, display_image, status, blocked, deactivated"


def _user_from_row(row: Dict[str, Any]) -> UserRecord:
    return UserRecord(
        id=str(row["id"]),
        first_name=row["first_name"] or "",
        last_name=row["last_name"] or "",
        display_image=row["display_image"],
        role=row["status"] or "customer",
        blocked=bool(row["blocked"]),
        deactivated=bool(row["deactivated"]),
    )


def _message_from_row(row: Dict[str, Any]) -> ChatMessage:
    return ChatMessage(
        id=row["id"],
        order_id=row["order_id"],
        sender_id=row["sender_id"],
        sender_type=row["sender_type"],
        body=row["body"] or "",
        image_url=row["image_url"],
        is_read=bool(row["is_read"]),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def _sender_from_row(row: Dict[str, Any]) -> Optional[SenderDetails]:
    if row.get("u_id") is None:
        return None
    return SenderDetails(
        id=str(row["u_id"]),
        first_name=row["u_first_name"] or "",
        last_name=row["u_last_name"] or "",
        display_image=row["u_display_image"],
    )


class SQLUserDirectory:

    def __init__(self, db: Database):
        self.db = db

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        row = await self.db.fetch_one(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", [str(user_id)]
        )
        return _user_from_row(row) if row else None

    async def get_admin(self, email: str) -> Optional[AdminRecord]:
        row = await self.db.fetch_one(
            "SELECT id, email, name, admin_type, supermarket_id FROM admins WHERE email = ?",
            [email],
        )
        if row is None:
            return None
        return AdminRecord(
            id=str(row["id"]),
            email=row["email"],
            name=row["name"] or "",
            admin_type=row["admin_type"],
            supermarket_id=row["supermarket_id"],
        )


class SQLOrderDirectory:

    def __init__(self, db: Database):
        self.db = db
        self._users = SQLUserDirectory(db)

    async def get_order_participants(self, order_id: str) -> Optional[OrderParticipants]:
        row = await self.db.fetch_one(
            "SELECT id, customer_id, agent_id FROM orders WHERE id = ?", [str(order_id)]
        )
        if row is None:
            return None
        agent_id = row["agent_id"]
        return OrderParticipants(
            order_id=str(row["id"]),
            customer_id=row["customer_id"],
            agent_id=agent_id,
            agent=await self._users.get_user(agent_id) if agent_id else None,
            customer=await self._users.get_user(row["customer_id"]),
        )

    async def get_orders_for_user(self, user_id: str) -> List[str]:
        rows = await self.db.fetch_all(
            "SELECT id FROM orders WHERE customer_id = ? OR agent_id = ? ORDER BY id",
            [user_id, user_id],
        )
        return [str(r["id"]) for r in rows]


class SQLMessageRepository:

    _SELECT = (
        "SELECT m.id, m.order_id, m.sender_id, m.sender_type, m.body, m.image_url, "
        "m.is_read, m.created_at, m.updated_at, "
        "u.id AS u_id, u.first_name AS u_first_name, u.last_name AS u_last_name, "
        "u.display_image AS u_display_image "
        "FROM chat_messages m LEFT JOIN users u ON u.id = m.sender_id"
    )

    def __init__(self, db: Database):
        self.db = db

    async def create_with_sender(self, message: ChatMessage) -> tuple[ChatMessage, Optional[SenderDetails]]:
        async with self.db.transaction():
            await self.db.execute(
                "INSERT INTO chat_messages "
                "(id, order_id, sender_id, sender_type, body, image_url, is_read, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    message.id,
                    message.order_id,
                    message.sender_id,
                    message.sender_type,
                    message.body,
                    message.image_url,
                    message.is_read,
                    storage_timestamp(message.created_at),
                    storage_timestamp(message.updated_at),
                ],
            )
            row = await self.db.fetch_one(f"{self._SELECT} WHERE m.id = ?", [message.id])
        return _message_from_row(row), _sender_from_row(row)

    async def list_by_order(self, order_id: str) -> List[tuple[ChatMessage, Optional[SenderDetails]]]:
        rows = await self.db.fetch_all(
            f"{self._SELECT} WHERE m.order_id = ? ORDER BY m.created_at ASC, m.seq ASC",
            [order_id],
        )
        return [(_message_from_row(r), _sender_from_row(r)) for r in rows]

    async def mark_read(self, order_id: str, reader_id: str) -> int:
        return await self.db.execute(
            "UPDATE chat_messages SET is_read = ?, updated_at = ? "
            "WHERE order_id = ? AND sender_id <> ? AND is_read = ?",
            [True, storage_timestamp(utcnow()), order_id, reader_id, False],
        )

    async def count_unread(self, reader_id: str, order_ids: Sequence[str]) -> Dict[str, int]:
        order_ids = list(order_ids)
        if not order_ids:
            return {}
        placeholders = ", ".join("?" for _ in order_ids)
        rows = await self.db.fetch_all(
            "SELECT order_id, COUNT(*) AS unread FROM chat_messages "
            f"WHERE is_read = ? AND sender_id <> ? AND order_id IN ({placeholders}) "
            "GROUP BY order_id",
            [False, reader_id, *order_ids],
        )
        return {str(r["order_id"]): int(r["unread"]) for r in rows}


class SQLNotificationSink:

    def __init__(self, db: Database):
        self.db = db

    async def create_notifications(self, notifications: Sequence[Notification]) -> None:
        if not notifications:
            return
        async with self.db.transaction():
            await self.db.execute_many(
                "INSERT INTO notifications "
                "(id, kind, recipient_user_id, actor_user_id, resource, heading, body, "
                "is_read, metadata, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    [
                        n.id,
                        NotificationKind(n.kind).value,
                        n.recipient_user_id,
                        n.actor_user_id,
                        n.resource,
                        n.heading,
                        n.body,
                        n.read,
                        json.dumps(n.metadata),
                        storage_timestamp(n.created_at),
                    ]
                    for n in notifications
                ],
            )

    async def mark_read(self, user_id: str, kind: NotificationKind, resource: str) -> int:
        return await self.db.execute(
            "UPDATE notifications SET is_read = ? "
            "WHERE recipient_user_id = ? AND kind = ? AND resource = ? AND is_read = ?",
            [True, user_id, NotificationKind(kind).value, resource, False],
        )

    async def for_user(self, user_id: str) -> List[Notification]:
        rows = await self.db.fetch_all(
            "SELECT * FROM notifications WHERE recipient_user_id = ? ORDER BY created_at",
            [user_id],
        )
        return [
            Notification(
                id=r["id"],
                kind=NotificationKind(r["kind"]),
                recipient_user_id=r["recipient_user_id"],
                actor_user_id=r["actor_user_id"],
                resource=r["resource"],
                heading=r["heading"],
                body=r["body"],
                read=bool(r["is_read"]),
                metadata=json.loads(r["metadata"] or "{}"),
                created_at=parse_timestamp(r["created_at"]),
            )
            for r in rows
        ]


class SQLLocationHistory:

    def __init__(self, db: Database):
        self.db = db

    async def record(self, sample: LocationSample) -> bool:
        async with self.db.transaction():
            agent = await self.db.fetch_val(
                "SELECT id FROM users WHERE id = ? AND status = ?", [sample.agent_id, "agent"]
            )
            if agent is None:
                return False
            await self.db.execute(
                "INSERT INTO agent_locations "
                "(agent_id, latitude, longitude, order_id, region_id, recorded_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                [
                    sample.agent_id,
                    sample.latitude,
                    sample.longitude,
                    sample.order_id,
                    sample.region_id,
                    sample.timestamp,
                ],
            )
        return True


class SQLStores:
    """Every SQL store over one ``Database``."""

    def __init__(self, db: Database):
        self.db = db
        self.users = SQLUserDirectory(db)
        self.orders = SQLOrderDirectory(db)
        self.messages = SQLMessageRepository(db)
        self.notifications = SQLNotificationSink(db)
        self.locations = SQLLocationHistory(db)
