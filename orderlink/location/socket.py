"""
Location socket - agent pings and location room subscriptions.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from orderlink.faults import InvalidStateFault
from orderlink.rooms import location_rooms
from orderlink.sockets import (
    Connection,
    Event,
    OnConnect,
    OnDisconnect,
    Socket,
    SocketController,
    Subscribe,
    Unsubscribe,
)
from .service import LocationService

logger = logging.getLogger("orderlink.location.socket")

INVALID_SUBSCRIPTION = "Invalid subscription data"
INVALID_UNSUBSCRIPTION = "Invalid unsubscription data"


@Socket("/location-socket")
class LocationSocket(SocketController):

    def __init__(self, locations: LocationService):
        self.locations = locations

    @OnConnect()
    async def on_connect(self, conn: Connection):
        principal = conn.principal
        logger.info(f"User connected to location socket: {principal.id} ({principal.role.value})")
        await conn.send_event("connection-status", {
            "status": "connected",
            "userId": principal.id,
            "userType": principal.role.value,
        })

    @OnDisconnect()
    async def on_disconnect(self, conn: Connection, reason: Optional[str]):
        logger.info(f"User disconnected from location socket: {conn.principal.id} ({reason})")

    @Event("update-location", error_message="Failed to update location")
    async def update_location(self, conn: Connection, payload: Any):
        await self.locations.update_location(conn.principal, payload)

    @Subscribe("subscribe-to-location", error_message="Failed to subscribe to location updates")
    async def subscribe(self, conn: Connection, payload: Any):
        rooms = location_rooms(payload)
        if not rooms:
            raise InvalidStateFault(INVALID_SUBSCRIPTION)

        for room in rooms:
            await conn.join(room.name)
            await conn.send_event("location-subscription-status", {
                "success": True,
                "room": room.to_wire(),
            })
            logger.info(f"User {conn.principal.id} subscribed to {room.type} location updates for {room.id}")

        agent_room = next((r for r in rooms if r.type == "agent"), None)
        if agent_room is not None:
            last = await self.locations.last_position(agent_room.id)
            if last is not None:
                await conn.send_event("location-update", last)

    @Unsubscribe("unsubscribe-from-location", error_message="Failed to unsubscribe from location updates")
    async def unsubscribe(self, conn: Connection, payload: Any):
        rooms = location_rooms(payload)
        if not rooms:
            raise InvalidStateFault(INVALID_UNSUBSCRIPTION)

        for room in rooms:
            await conn.leave(room.name)
            await conn.send_event("location-unsubscription-status", {
                "success": True,
                "room": room.to_wire(),
            })
            logger.info(f"User {conn.principal.id} unsubscribed from {room.type} location updates for {room.id}")
