"""
Shared test fixtures for the OrderLink test suite.

The standard order ``O1`` belongs to customer ``C1`` (Ada Obi) and is
served by agent ``A1`` (Tunde Bello). ``C2`` is a customer with no
relation to it.
"""

import pytest

from orderlink.auth import AdminScope, Principal, Role, SUPER_ADMIN
from orderlink.cache import CacheService
from orderlink.chat.activation import ChatActivationStore
from orderlink.chat.notifications import NotificationFanout
from orderlink.chat.service import ChatService
from orderlink.config import CacheConfig
from orderlink.location.service import LocationService
from orderlink.stores import MemoryStores
from orderlink.testing import FakeBroadcaster, MockCacheBackend


@pytest.fixture
def stores():
    stores = MemoryStores()
    stores.seed_user("C1", "Ada", "Obi")
    stores.seed_user("C2", "Bola", "Ade")
    stores.seed_user("A1", "Tunde", "Bello", role="agent")
    stores.seed_user("A2", "Kemi", "Lawal", role="agent")
    stores.seed_admin("support@orderlink.test", "Support Desk", admin_id="ADM1")
    stores.seed_order("O1", customer_id="C1", agent_id="A1")
    stores.seed_order("O2", customer_id="C1")
    return stores


@pytest.fixture
def cache_backend():
    return MockCacheBackend()


@pytest.fixture
def cache(cache_backend):
    return CacheService(cache_backend, CacheConfig(default_ttl=300))


@pytest.fixture
def broadcaster():
    return FakeBroadcaster("/socket")


@pytest.fixture
def activation(cache):
    return ChatActivationStore(cache)


@pytest.fixture
def fanout(stores):
    return NotificationFanout(stores.orders, stores.notifications)


@pytest.fixture
def chat(stores, activation, fanout, broadcaster):
    return ChatService(stores.messages, stores.orders, activation, fanout, broadcaster)


@pytest.fixture
def location_broadcaster():
    return FakeBroadcaster("/location-socket")


@pytest.fixture
def locations(stores, cache, location_broadcaster):
    return LocationService(stores.locations, cache, location_broadcaster)


# ============================================================================
# Principals
# ============================================================================


@pytest.fixture
def customer():
    return Principal(id="C1", role=Role.CUSTOMER, display_name="Ada Obi")


@pytest.fixture
def outsider():
    return Principal(id="C2", role=Role.CUSTOMER, display_name="Bola Ade")


@pytest.fixture
def agent():
    return Principal(id="A1", role=Role.AGENT, display_name="Tunde Bello")


@pytest.fixture
def admin():
    return Principal(
        id="root@orderlink.test",
        role=Role.ADMIN,
        display_name="Super Admin",
        admin_scope=AdminScope(admin_type=SUPER_ADMIN),
    )
