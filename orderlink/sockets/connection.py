"""
Connection - one authenticated socket session.

Each connection has:
- Unique connection ID
- Principal and raw token (from the handshake)
- Room subscriptions, torn down on disconnect
- State dictionary
- Send capabilities
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional, Set, TYPE_CHECKING
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import logging

from .envelope import JSONCodec, MessageEnvelope, MessageType

if TYPE_CHECKING:
    from orderlink.auth import Principal
    from .adapters.base import Adapter

logger = logging.getLogger("orderlink.sockets.connection")


class ConnectionState(str, Enum):
    """Connection lifecycle state."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class ConnectionScope:
    """Scope metadata for connection."""
    namespace: str
    path: str
    query_params: Dict[str, Any]
    headers: Dict[str, str]


class Connection:
    """
    Socket connection bound to an authenticated principal.

    Provides:
    - Message sending (send_event, send_error)
    - Room management (join, leave)
    """

    def __init__(
        self,
        connection_id: str,
        namespace: str,
        scope: ConnectionScope,
        adapter: Adapter,
        send_func: Callable[[str], Awaitable[None]],
        principal: Optional[Principal] = None,
        token: Optional[str] = None,
    ):
        self.connection_id = connection_id
        self.namespace = namespace
        self.scope = scope
        self.adapter = adapter
        self._send_func = send_func
        self.principal = principal
        self.token = token
        self._codec = JSONCodec()

        self.state: Dict[str, Any] = {}
        self._connection_state = ConnectionState.CONNECTING
        self._rooms: Set[str] = set()
        self.created_at = datetime.now(timezone.utc)
        self.last_activity = datetime.now(timezone.utc)

        self.messages_sent = 0
        self.messages_received = 0
        self.bytes_sent = 0
        self.bytes_received = 0

    @property
    def is_connected(self) -> bool:
        return self._connection_state == ConnectionState.CONNECTED

    @property
    def rooms(self) -> Set[str]:
        """Get subscribed rooms."""
        return self._rooms.copy()

    def mark_connected(self):
        self._connection_state = ConnectionState.CONNECTED

    def mark_closing(self):
        self._connection_state = ConnectionState.CLOSING

    def mark_closed(self):
        self._connection_state = ConnectionState.CLOSED

    async def send_event(self, event: str, payload: Any = None) -> None:
        """Send an event frame to this client only."""
        await self.send_envelope(MessageEnvelope(
            type=MessageType.EVENT,
            event=event,
            payload=payload,
        ))

    async def send_error(self, message: str) -> None:
        """Send ``error {message}`` to this client only."""
        await self.send_event("error", {"message": message})

    async def send_envelope(self, envelope: MessageEnvelope):
        await self.send_raw(self._codec.encode(envelope))

    async def send_raw(self, data: str):
        """Send an already-encoded text frame."""
        if self._connection_state == ConnectionState.CLOSED:
            logger.debug(f"Dropping frame for closed connection {self.connection_id}")
            return

        await self._send_func(data)

        self.messages_sent += 1
        self.bytes_sent += len(data)
        self.last_activity = datetime.now(timezone.utc)

    async def join(self, room: str) -> bool:
        """
        Join a room.

        Returns:
            True if newly joined, False if already member
        """
        if room in self._rooms:
            return False

        self._rooms.add(room)
        await self.adapter.join_room(
            namespace=self.namespace,
            room=room,
            connection_id=self.connection_id,
        )
        logger.debug(f"Connection {self.connection_id} joined room {room}")
        return True

    async def leave(self, room: str) -> bool:
        """
        Leave a room.

        Returns:
            True if was member, False otherwise
        """
        if room not in self._rooms:
            return False

        self._rooms.discard(room)
        await self.adapter.leave_room(
            namespace=self.namespace,
            room=room,
            connection_id=self.connection_id,
        )
        logger.debug(f"Connection {self.connection_id} left room {room}")
        return True

    async def leave_all(self):
        for room in list(self._rooms):
            await self.leave(room)

    def record_received(self, size: int):
        self.messages_received += 1
        self.bytes_received += size
        self.last_activity = datetime.now(timezone.utc)

    def __repr__(self) -> str:
        principal_id = self.principal.id if self.principal else "anonymous"
        return (
            f"Connection(id={self.connection_id}, "
            f"namespace={self.namespace}, "
            f"principal={principal_id}, "
            f"rooms={len(self._rooms)}, "
            f"state={self._connection_state.value})"
        )
