"""
Room names for order chats and location tracking.

Rooms are plain strings scoped to one socket namespace:

    order:{id}              chat participants of an order
    location:order:{id}     positions of the agent serving an order
    location:region:{id}    positions of agents inside a region
    location:agent:{id}     positions of one agent
"""

from typing import Any, Dict, List, NamedTuple


def order_room(order_id: Any) -> str:
    return f"order:{order_id}"


def location_order_room(order_id: Any) -> str:
    return f"location:order:{order_id}"


def location_region_room(region_id: Any) -> str:
    return f"location:region:{region_id}"


def location_agent_room(agent_id: Any) -> str:
    return f"location:agent:{agent_id}"


class LocationRoom(NamedTuple):
    type: str  # order | region | agent
    id: str
    name: str

    def to_wire(self) -> Dict[str, str]:
        return {"type": self.type, "id": self.id}


_SELECTOR_KEYS = (
    ("orderId", "order", location_order_room),
    ("regionId", "region", location_region_room),
    ("agentId", "agent", location_agent_room),
)


def location_rooms(selector: Any) -> List[LocationRoom]:
    """
    Every location room named by a selector mapping.

    ``{"orderId": "O1", "agentId": "A1"}`` yields the order room and the
    agent room, in that order. Missing or empty identifiers are skipped;
    anything but a mapping yields no rooms.
    """
    if not isinstance(selector, dict):
        return []
    rooms = []
    for key, kind, build in _SELECTOR_KEYS:
        value = selector.get(key)
        if value is None or value == "":
            continue
        rooms.append(LocationRoom(kind, str(value), build(value)))
    return rooms
