"""
Order chat: message persistence, activation state, notification
fan-out and the ``ChatSocket`` gateway.
"""

from .models import (
    ChatMessage,
    ChatActivationRecord,
    Notification,
    NotificationKind,
    SenderType,
)

__all__ = [
    "ChatMessage",
    "ChatActivationRecord",
    "Notification",
    "NotificationKind",
    "SenderType",
]
