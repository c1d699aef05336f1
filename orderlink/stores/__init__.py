"""
OrderLink stores - collaborator contracts and their implementations.
"""

from .base import (
    AdminRecord,
    LocationHistory,
    MessageRepository,
    NotificationSink,
    OrderDirectory,
    OrderParticipants,
    SenderDetails,
    UnreadCounts,
    UserDirectory,
    UserRecord,
)
from .memory import (
    InMemoryLocationHistory,
    InMemoryMessageRepository,
    InMemoryNotificationSink,
    InMemoryOrderDirectory,
    InMemoryUserDirectory,
    MemoryStores,
)
from .sql import (
    SQLLocationHistory,
    SQLMessageRepository,
    SQLNotificationSink,
    SQLOrderDirectory,
    SQLStores,
    SQLUserDirectory,
)

__all__ = [
    "AdminRecord",
    "LocationHistory",
    "MessageRepository",
    "NotificationSink",
    "OrderDirectory",
    "OrderParticipants",
    "SenderDetails",
    "UnreadCounts",
    "UserDirectory",
    "UserRecord",
    "InMemoryLocationHistory",
    "InMemoryMessageRepository",
    "InMemoryNotificationSink",
    "InMemoryOrderDirectory",
    "InMemoryUserDirectory",
    "MemoryStores",
    "SQLLocationHistory",
    "SQLMessageRepository",
    "SQLNotificationSink",
    "SQLOrderDirectory",
    "SQLStores",
    "SQLUserDirectory",
]
