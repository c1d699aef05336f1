"""
Adapter Base - protocol for socket fanout adapters.

Adapters own room membership and deliver published envelopes to the
connections registered on this worker.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Protocol, Set
from dataclasses import dataclass

from ..envelope import MessageEnvelope

SendCallback = Callable[[str], Awaitable[None]]


@dataclass
class RoomInfo:
    """Room metadata."""
    namespace: str
    room: str
    member_count: int
    members: Set[str]  # connection IDs


class Adapter(Protocol):
    """
    Adapter protocol for socket fanout.

    Implementations:
    - InMemoryAdapter: single process (development, tests)
    - RedisAdapter: Redis pub/sub across workers
    """

    async def initialize(self) -> None:
        ...

    async def shutdown(self) -> None:
        ...

    def register_send_callback(self, namespace: str, connection_id: str, callback: SendCallback) -> None:
        """Route frames for ``connection_id`` to ``callback``."""
        ...

    def unregister_send_callback(self, namespace: str, connection_id: str) -> None:
        ...

    async def publish(
        self,
        namespace: str,
        room: str,
        envelope: MessageEnvelope,
        exclude_connection: Optional[str] = None,
    ) -> None:
        """
        Publish message to room.

        Delivers to all connections in room across all workers, except
        ``exclude_connection`` when given.
        """
        ...

    async def join_room(self, namespace: str, room: str, connection_id: str) -> None:
        ...

    async def leave_room(self, namespace: str, room: str, connection_id: str) -> None:
        ...

    async def get_room_members(self, namespace: str, room: str) -> Set[str]:
        ...

    async def get_room_info(self, namespace: str, room: str) -> Optional[RoomInfo]:
        ...

    async def register_connection(self, namespace: str, connection_id: str, worker_id: str) -> None:
        ...

    async def unregister_connection(self, namespace: str, connection_id: str) -> None:
        """Forget the connection and remove it from every room."""
        ...

    async def get_connection_count(self, namespace: str) -> int:
        ...
