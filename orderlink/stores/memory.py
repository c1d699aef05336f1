"""
In-memory collaborator stores.

Process-local implementations of every contract in ``stores.base``,
used by the test-suite and by development servers. ``MemoryStores``
bundles them over one shared user table and offers seed helpers.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Dict, List, Optional, Sequence

from orderlink.chat.models import ChatMessage, Notification, NotificationKind, utcnow
from orderlink.location.models import LocationSample
from .base import (
    AdminRecord,
    OrderParticipants,
    SenderDetails,
    UserRecord,
)


class InMemoryUserDirectory:

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.admins: Dict[str, AdminRecord] = {}

    def add_user(self, user: UserRecord) -> UserRecord:
        self.users[user.id] = user
        return user

    def add_admin(self, admin: AdminRecord) -> AdminRecord:
        self.admins[admin.email] = admin
        return admin

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        user = self.users.get(str(user_id))
        return copy.copy(user) if user else None

    async def get_admin(self, email: str) -> Optional[AdminRecord]:
        admin = self.admins.get(email)
        return copy.copy(admin) if admin else None


class InMemoryOrderDirectory:
    """Orders as ``order_id -> (customer_id, agent_id)``."""

    def __init__(self, users: InMemoryUserDirectory):
        self._users = users
        self.orders: Dict[str, tuple[str, Optional[str]]] = {}

    def add_order(self, order_id: str, customer_id: str, agent_id: Optional[str] = None) -> None:
        self.orders[order_id] = (customer_id, agent_id)

    def assign_agent(self, order_id: str, agent_id: Optional[str]) -> None:
        customer_id, _ = self.orders[order_id]
        self.orders[order_id] = (customer_id, agent_id)

    async def get_order_participants(self, order_id: str) -> Optional[OrderParticipants]:
        row = self.orders.get(str(order_id))
        if row is None:
            return None
        customer_id, agent_id = row
        return OrderParticipants(
            order_id=str(order_id),
            customer_id=customer_id,
            agent_id=agent_id,
            agent=await self._users.get_user(agent_id) if agent_id else None,
            customer=await self._users.get_user(customer_id),
        )

    async def get_orders_for_user(self, user_id: str) -> List[str]:
        return [
            order_id for order_id, (customer_id, agent_id) in self.orders.items()
            if user_id in (customer_id, agent_id)
        ]


class InMemoryMessageRepository:

    def __init__(self, users: InMemoryUserDirectory):
        self._users = users
        self._messages: List[ChatMessage] = []
        self._lock = asyncio.Lock()

    async def create_with_sender(self, message: ChatMessage) -> tuple[ChatMessage, Optional[SenderDetails]]:
        async with self._lock:
            self._messages.append(copy.copy(message))
        return copy.copy(message), await self._sender(message.sender_id)

    async def list_by_order(self, order_id: str) -> List[tuple[ChatMessage, Optional[SenderDetails]]]:
        # sorted() is stable, so equal timestamps keep insertion order
        rows = sorted(
            (m for m in self._messages if m.order_id == order_id),
            key=lambda m: m.created_at,
        )
        return [(copy.copy(m), await self._sender(m.sender_id)) for m in rows]

    async def mark_read(self, order_id: str, reader_id: str) -> int:
        count = 0
        async with self._lock:
            now = utcnow()
            for message in self._messages:
                if message.order_id == order_id and message.sender_id != reader_id and not message.is_read:
                    message.is_read = True
                    message.updated_at = now
                    count += 1
        return count

    async def count_unread(self, reader_id: str, order_ids: Sequence[str]) -> Dict[str, int]:
        wanted = set(order_ids)
        counts: Dict[str, int] = {}
        for message in self._messages:
            if message.order_id in wanted and message.sender_id != reader_id and not message.is_read:
                counts[message.order_id] = counts.get(message.order_id, 0) + 1
        return counts

    async def _sender(self, sender_id: str) -> Optional[SenderDetails]:
        user = await self._users.get_user(sender_id)
        if user is None:
            return None
        return SenderDetails(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            display_image=user.display_image,
        )

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)


class InMemoryNotificationSink:

    def __init__(self):
        self.notifications: List[Notification] = []

    async def create_notifications(self, notifications: Sequence[Notification]) -> None:
        self.notifications.extend(notifications)

    async def mark_read(self, user_id: str, kind: NotificationKind, resource: str) -> int:
        count = 0
        for notification in self.notifications:
            if (
                notification.recipient_user_id == user_id
                and notification.kind == kind
                and notification.resource == resource
                and not notification.read
            ):
                notification.read = True
                count += 1
        return count

    def for_user(self, user_id: str) -> List[Notification]:
        return [n for n in self.notifications if n.recipient_user_id == user_id]


class InMemoryLocationHistory:

    def __init__(self, users: InMemoryUserDirectory):
        self._users = users
        self.samples: List[LocationSample] = []

    async def record(self, sample: LocationSample) -> bool:
        agent = await self._users.get_user(sample.agent_id)
        if agent is None or agent.role != "agent":
            return False
        self.samples.append(sample)
        return True

    def latest(self, agent_id: str) -> Optional[LocationSample]:
        for sample in reversed(self.samples):
            if sample.agent_id == agent_id:
                return sample
        return None


class MemoryStores:
    """
    Every in-memory store over one shared user table.

    Example:
        stores = MemoryStores()
        stores.seed_user("C1", "Ada", "Obi")
        stores.seed_user("A1", "Tunde", "Bello", role="agent")
        stores.seed_order("O1", customer_id="C1", agent_id="A1")
    """

    def __init__(self):
        self.users = InMemoryUserDirectory()
        self.orders = InMemoryOrderDirectory(self.users)
        self.messages = InMemoryMessageRepository(self.users)
        self.notifications = InMemoryNotificationSink()
        self.locations = InMemoryLocationHistory(self.users)

    def seed_user(
        self,
        user_id: str,
        first_name: str = "",
        last_name: str = "",
        *,
        role: str = "customer",
        display_image: Optional[str] = None,
        blocked: bool = False,
        deactivated: bool = False,
    ) -> UserRecord:
        return self.users.add_user(UserRecord(
            id=user_id,
            first_name=first_name,
            last_name=last_name,
            display_image=display_image,
            role=role,
            blocked=blocked,
            deactivated=deactivated,
        ))

    def seed_admin(
        self,
        email: str,
        name: str = "",
        *,
        admin_type: str = "customer_support",
        supermarket_id: Optional[str] = None,
        admin_id: Optional[str] = None,
    ) -> AdminRecord:
        return self.users.add_admin(AdminRecord(
            id=admin_id or email,
            email=email,
            name=name,
            admin_type=admin_type,
            supermarket_id=supermarket_id,
        ))

    def seed_order(self, order_id: str, customer_id: str, agent_id: Optional[str] = None) -> None:
        self.orders.add_order(order_id, customer_id, agent_id)
