"""
In-Memory Adapter - single-process socket adapter.

For development and testing. No external dependencies.
Not suitable for multi-worker production deployments.
"""

from __future__ import annotations

from typing import Dict, Iterable, Set, Optional
from collections import defaultdict
import logging
import asyncio

from .base import RoomInfo, SendCallback
from ..envelope import JSONCodec, MessageEnvelope

logger = logging.getLogger("orderlink.sockets.adapters.inmemory")


class InMemoryAdapter:
    """
    In-memory adapter for single-process deployments.

    Stores rooms and connections in memory.
    Fast but cannot scale horizontally.
    """

    def __init__(self):
        # {namespace: {room: set(connection_ids)}}
        self._rooms: Dict[str, Dict[str, Set[str]]] = defaultdict(lambda: defaultdict(set))

        # {namespace: {connection_id: worker_id}}
        self._connections: Dict[str, Dict[str, str]] = defaultdict(dict)

        # {namespace: {connection_id: send_callback}}
        self._send_callbacks: Dict[str, Dict[str, SendCallback]] = defaultdict(dict)

        self._codec = JSONCodec()
        self._initialized = False

    async def initialize(self) -> None:
        self._initialized = True
        logger.info("InMemoryAdapter initialized")

    async def shutdown(self) -> None:
        self._rooms.clear()
        self._connections.clear()
        self._send_callbacks.clear()
        self._initialized = False
        logger.info("InMemoryAdapter shut down")

    def register_send_callback(self, namespace: str, connection_id: str, callback: SendCallback):
        self._send_callbacks[namespace][connection_id] = callback

    def unregister_send_callback(self, namespace: str, connection_id: str):
        self._send_callbacks[namespace].pop(connection_id, None)

    async def publish(
        self,
        namespace: str,
        room: str,
        envelope: MessageEnvelope,
        exclude_connection: Optional[str] = None,
    ) -> None:
        """Publish message to room."""
        members = set(self._rooms[namespace].get(room, set()))
        if exclude_connection:
            members.discard(exclude_connection)

        if not members:
            logger.debug(f"No members in room {namespace}/{room}")
            return

        await self._deliver(namespace, members, self._codec.encode(envelope))
        logger.debug(f"Published {envelope.event} to {len(members)} members in {namespace}/{room}")

    async def _deliver(self, namespace: str, connection_ids: Iterable[str], data: str) -> None:
        callbacks = self._send_callbacks[namespace]
        targets = [(cid, callbacks[cid]) for cid in connection_ids if cid in callbacks]
        if not targets:
            return
        results = await asyncio.gather(*(cb(data) for _, cb in targets), return_exceptions=True)
        for (cid, _), result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(f"Delivery to {cid} failed: {result}")

    async def join_room(self, namespace: str, room: str, connection_id: str) -> None:
        self._rooms[namespace][room].add(connection_id)

    async def leave_room(self, namespace: str, room: str, connection_id: str) -> None:
        if room in self._rooms[namespace]:
            self._rooms[namespace][room].discard(connection_id)

            # Clean up empty rooms
            if not self._rooms[namespace][room]:
                del self._rooms[namespace][room]

    async def get_room_members(self, namespace: str, room: str) -> Set[str]:
        return self._rooms[namespace].get(room, set()).copy()

    async def get_room_info(self, namespace: str, room: str) -> Optional[RoomInfo]:
        members = self._rooms[namespace].get(room)
        if members is None:
            return None
        return RoomInfo(
            namespace=namespace,
            room=room,
            member_count=len(members),
            members=members.copy(),
        )

    async def list_rooms(self, namespace: str) -> Set[str]:
        return set(self._rooms[namespace].keys())

    async def register_connection(self, namespace: str, connection_id: str, worker_id: str) -> None:
        self._connections[namespace][connection_id] = worker_id
        logger.debug(f"Registered connection {connection_id} in {namespace}")

    async def unregister_connection(self, namespace: str, connection_id: str) -> None:
        self._connections[namespace].pop(connection_id, None)

        for room in list(self._rooms[namespace].keys()):
            self._rooms[namespace][room].discard(connection_id)
            if not self._rooms[namespace][room]:
                del self._rooms[namespace][room]

        logger.debug(f"Unregistered connection {connection_id} from {namespace}")

    async def get_connection_count(self, namespace: str) -> int:
        return len(self._connections[namespace])
