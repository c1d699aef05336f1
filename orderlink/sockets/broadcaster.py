"""
Room broadcaster - publishes server events to a room of one namespace.

Services receive a ``RoomBroadcaster`` at construction instead of
reaching for a global socket server.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, TYPE_CHECKING

from .envelope import MessageEnvelope, MessageType

if TYPE_CHECKING:
    from .adapters.base import Adapter

logger = logging.getLogger("orderlink.sockets.broadcaster")


class RoomBroadcaster:

    def __init__(self, adapter: Adapter, namespace: str):
        self.adapter = adapter
        self.namespace = namespace

    async def emit_to_room(
        self,
        room: str,
        event: str,
        payload: Any,
        *,
        exclude_connection: Optional[str] = None,
    ) -> bool:
        """
        Deliver ``event`` to every member of ``room``.

        Returns False when the adapter failed. Failures are logged,
        not raised.
        """
        envelope = MessageEnvelope(type=MessageType.EVENT, event=event, payload=payload)
        try:
            await self.adapter.publish(
                namespace=self.namespace,
                room=room,
                envelope=envelope,
                exclude_connection=exclude_connection,
            )
        except Exception as e:
            logger.error(f"Broadcast of {event} to {room} failed: {e}")
            return False
        return True
