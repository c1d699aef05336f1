"""
Collaborator contracts consumed by the chat and location core.

Each contract is a Protocol; ``stores.memory`` and ``stores.sql`` ship
implementations. Records are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from orderlink.chat.models import ChatMessage, Notification, NotificationKind
from orderlink.location.models import LocationSample


# ============================================================================
# Records
# ============================================================================

@dataclass
class UserRecord:
    id: str
    first_name: str = ""
    last_name: str = ""
    display_image: Optional[str] = None
    role: str = "customer"  # customer | agent
    blocked: bool = False
    deactivated: bool = False

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class AdminRecord:
    id: str
    email: str
    name: str
    admin_type: str
    supermarket_id: Optional[str] = None


@dataclass
class OrderParticipants:
    """
    Participants of one order.

    ``agent`` is the loaded agent relation; ``agent_id`` is the raw
    foreign key. Either may be set without the other.
    """
    order_id: str
    customer_id: Optional[str]
    agent_id: Optional[str] = None
    agent: Optional[UserRecord] = None
    customer: Optional[UserRecord] = None

    def user_ids(self) -> List[str]:
        ids = []
        customer = self.customer.id if self.customer else self.customer_id
        if customer:
            ids.append(customer)
        agent = self.agent.id if self.agent else self.agent_id
        if agent and agent not in ids:
            ids.append(agent)
        return ids


@dataclass
class SenderDetails:
    id: str
    first_name: str = ""
    last_name: str = ""
    display_image: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "displayImage": self.display_image,
        }


@dataclass
class UnreadCounts:
    """Unread totals. ``by_order`` is None for a count scoped to one order."""
    total: int
    by_order: Optional[Dict[str, int]] = None

    def to_wire(self) -> Dict[str, Any]:
        if self.by_order is None:
            return {"total": self.total}
        return {"total": self.total, "byOrder": dict(self.by_order)}


# ============================================================================
# Contracts
# ============================================================================

@runtime_checkable
class UserDirectory(Protocol):

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    async def get_admin(self, email: str) -> Optional[AdminRecord]:
        ...


@runtime_checkable
class OrderDirectory(Protocol):

    async def get_order_participants(self, order_id: str) -> Optional[OrderParticipants]:
        ...

    async def get_orders_for_user(self, user_id: str) -> List[str]:
        ...


@runtime_checkable
class MessageRepository(Protocol):

    async def create_with_sender(self, message: ChatMessage) -> tuple[ChatMessage, Optional[SenderDetails]]:
        """Persist ``message`` and read its sender in one transaction."""
        ...

    async def list_by_order(self, order_id: str) -> List[tuple[ChatMessage, Optional[SenderDetails]]]:
        """All messages of an order, oldest first."""
        ...

    async def mark_read(self, order_id: str, reader_id: str) -> int:
        """Flip unread messages not authored by ``reader_id``. Returns count."""
        ...

    async def count_unread(self, reader_id: str, order_ids: Sequence[str]) -> Dict[str, int]:
        """Unread messages not authored by ``reader_id``, per order."""
        ...


@runtime_checkable
class NotificationSink(Protocol):

    async def create_notifications(self, notifications: Sequence[Notification]) -> None:
        ...

    async def mark_read(self, user_id: str, kind: NotificationKind, resource: str) -> int:
        ...


@runtime_checkable
class LocationHistory(Protocol):

    async def record(self, sample: LocationSample) -> bool:
        """Append ``sample``. False when the agent does not exist."""
        ...
