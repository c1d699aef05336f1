"""
Tests for the location broadcaster.
"""

import math

import pytest

from orderlink.faults import AuthorizationFault, InvalidStateFault, NotFoundFault
from orderlink.location.models import LocationSample
from orderlink.location.service import LocationService, last_position_key


class TestLocationSample:
    def test_wire_omits_missing_ids(self):
        sample = LocationSample("A1", 6.5, 3.4, 1000)
        assert sample.to_wire() == {
            "agentId": "A1", "latitude": 6.5, "longitude": 3.4, "timestamp": 1000,
        }

    def test_from_wire(self):
        sample = LocationSample.from_wire({
            "agentId": "A1", "latitude": "6.5", "longitude": 3, "orderId": "O1",
        })
        assert sample.latitude == 6.5
        assert sample.order_id == "O1"
        assert sample.timestamp > 0


class TestBuildSample:
    def test_defaults(self, locations, agent):
        sample = locations.build_sample(agent, {"latitude": 6.5, "longitude": 3.4})
        assert sample.agent_id == "A1"
        assert sample.timestamp > 0
        assert sample.order_id is None

    def test_keeps_client_timestamp(self, locations, agent):
        sample = locations.build_sample(
            agent, {"latitude": 0, "longitude": 0, "timestamp": 1700000000000}
        )
        assert sample.timestamp == 1700000000000

    def test_non_agent(self, locations, customer, admin):
        for principal in (customer, admin):
            with pytest.raises(AuthorizationFault) as exc:
                locations.build_sample(principal, {"latitude": 1, "longitude": 1})
            assert exc.value.message == "Only agents can update location"

    def test_other_agent(self, locations, agent):
        with pytest.raises(AuthorizationFault) as exc:
            locations.build_sample(agent, {"agentId": "A2", "latitude": 1, "longitude": 1})
        assert exc.value.message == "Invalid agent ID"

    @pytest.mark.parametrize("payload", [
        None,
        "6.5,3.4",
        {"longitude": 3.4},
        {"latitude": "6.5", "longitude": 3.4},
        {"latitude": True, "longitude": 3.4},
        {"latitude": 91, "longitude": 3.4},
        {"latitude": 6.5, "longitude": -180.5},
        {"latitude": math.nan, "longitude": 3.4},
    ])
    def test_invalid_coordinates(self, locations, agent, payload):
        with pytest.raises(InvalidStateFault) as exc:
            locations.build_sample(agent, payload)
        assert exc.value.message == "Invalid coordinates"

    def test_bounds_inclusive(self, locations, agent):
        sample = locations.build_sample(agent, {"latitude": -90, "longitude": 180})
        assert (sample.latitude, sample.longitude) == (-90.0, 180.0)


class TestUpdateLocation:
    @pytest.mark.asyncio
    async def test_update(self, locations, stores, location_broadcaster, cache_backend, agent):
        payload = {"latitude": 6.5, "longitude": 3.4, "orderId": "O1", "regionId": "R1"}
        sample = await locations.update_location(agent, payload)

        assert stores.locations.latest("A1") == sample
        assert location_broadcaster.rooms_for("location-update") == [
            "location:order:O1",
            "location:region:R1",
            "location:agent:A1",
        ]
        assert location_broadcaster.emitted[0].payload == sample.to_wire()
        assert cache_backend.store[last_position_key("A1")] == sample.to_wire()
        assert cache_backend.get_ttl("location:agent:A1") is not None

    @pytest.mark.asyncio
    async def test_unknown_agent(self, cache, location_broadcaster, stores, agent):
        stores.users.users.pop("A1")
        service = LocationService(stores.locations, cache, location_broadcaster)
        with pytest.raises(NotFoundFault) as exc:
            await service.update_location(agent, {"latitude": 1, "longitude": 1})
        assert exc.value.message == "Agent not found"
        assert location_broadcaster.emitted == []

    @pytest.mark.asyncio
    async def test_cache_failure_still_broadcasts(self, locations, location_broadcaster, cache_backend, agent):
        cache_backend.fail_on("set")
        await locations.update_location(agent, {"latitude": 1, "longitude": 1})
        assert location_broadcaster.rooms_for("location-update") == ["location:agent:A1"]

    @pytest.mark.asyncio
    async def test_last_position(self, locations, agent):
        assert await locations.last_position("A1") is None
        await locations.update_location(agent, {"latitude": 1, "longitude": 2})
        position = await locations.last_position("A1")
        assert (position["latitude"], position["longitude"]) == (1.0, 2.0)
