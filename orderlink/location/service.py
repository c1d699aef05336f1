"""
Agent location broadcaster.

An agent's ping is validated, appended to the durable history, cached
as the agent's last known position and fanned out to every location
room it names.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional

from orderlink.auth import Principal
from orderlink.cache import CacheService
from orderlink.faults import AuthorizationFault, InvalidStateFault, NotFoundFault
from orderlink.rooms import location_agent_room, location_rooms
from orderlink.sockets.broadcaster import RoomBroadcaster
from orderlink.stores.base import LocationHistory
from .models import LocationSample, now_ms

logger = logging.getLogger("orderlink.location.service")

AGENTS_ONLY = "Only agents can update location"
INVALID_AGENT_ID = "Invalid agent ID"
INVALID_COORDINATES = "Invalid coordinates"

DEFAULT_LAST_POSITION_TTL = 3600


def last_position_key(agent_id: Any) -> str:
    return location_agent_room(agent_id)


def _coordinate(value: Any, bound: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidStateFault(INVALID_COORDINATES)
    value = float(value)
    if math.isnan(value) or not -bound <= value <= bound:
        raise InvalidStateFault(INVALID_COORDINATES)
    return value


def _optional_id(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class LocationService:

    def __init__(
        self,
        history: LocationHistory,
        cache: CacheService,
        broadcaster: RoomBroadcaster,
        *,
        last_position_ttl: int = DEFAULT_LAST_POSITION_TTL,
    ):
        self.history = history
        self.cache = cache
        self.broadcaster = broadcaster
        self.last_position_ttl = last_position_ttl

    def build_sample(self, principal: Principal, payload: Any) -> LocationSample:
        """
        Validate an ``update-location`` payload sent by ``principal``.

        Raises:
            AuthorizationFault: Not an agent, or publishing for another agent
            InvalidStateFault: Missing or out-of-range coordinates
        """
        if not principal.is_agent:
            raise AuthorizationFault(AGENTS_ONLY, resource="location", action="update")
        if not isinstance(payload, dict):
            raise InvalidStateFault(INVALID_COORDINATES)

        agent_id = _optional_id(payload.get("agentId")) or principal.id
        if agent_id != principal.id:
            raise AuthorizationFault(INVALID_AGENT_ID, resource=f"agent:{agent_id}", action="update")

        timestamp = payload.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)) or timestamp <= 0:
            timestamp = now_ms()

        return LocationSample(
            agent_id=agent_id,
            latitude=_coordinate(payload.get("latitude"), 90.0),
            longitude=_coordinate(payload.get("longitude"), 180.0),
            timestamp=int(timestamp),
            order_id=_optional_id(payload.get("orderId")),
            region_id=_optional_id(payload.get("regionId")),
        )

    async def update_location(self, principal: Principal, payload: Any) -> LocationSample:
        sample = self.build_sample(principal, payload)

        if not await self.history.record(sample):
            raise NotFoundFault("Agent", sample.agent_id)

        wire = sample.to_wire()
        # Best-effort
        if not await self.cache.set(last_position_key(sample.agent_id), wire, ttl=self.last_position_ttl):
            logger.warning(f"Last position of agent {sample.agent_id} not cached")

        for room in location_rooms(wire):
            await self.broadcaster.emit_to_room(room.name, "location-update", wire)

        logger.info(f"Location updated for agent {sample.agent_id}")
        return sample

    async def last_position(self, agent_id: str) -> Optional[Dict[str, Any]]:
        """Cached last sample of the agent in wire shape, if still live."""
        data = await self.cache.get(last_position_key(agent_id))
        return data if isinstance(data, dict) else None
