"""Tests for room naming."""

from orderlink.rooms import (
    LocationRoom,
    location_agent_room,
    location_order_room,
    location_region_room,
    location_rooms,
    order_room,
)


class TestRoomNames:
    def test_order_room(self):
        assert order_room("O1") == "order:O1"
        assert order_room(42) == "order:42"

    def test_location_rooms(self):
        assert location_order_room("O1") == "location:order:O1"
        assert location_region_room("R9") == "location:region:R9"
        assert location_agent_room("A1") == "location:agent:A1"


class TestLocationSelector:
    def test_all_selectors_in_order(self):
        rooms = location_rooms({"agentId": "A1", "regionId": "R1", "orderId": "O1"})
        assert [r.name for r in rooms] == [
            "location:order:O1",
            "location:region:R1",
            "location:agent:A1",
        ]

    def test_wire_shape(self):
        (room,) = location_rooms({"orderId": 7})
        assert room == LocationRoom("order", "7", "location:order:7")
        assert room.to_wire() == {"type": "order", "id": "7"}

    def test_empty_values_skipped(self):
        assert location_rooms({"orderId": "", "agentId": None}) == []

    def test_non_mapping(self):
        assert location_rooms("O1") == []
        assert location_rooms(None) == []
