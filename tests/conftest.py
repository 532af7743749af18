# tests/conftest.py
from __future__ import annotations

import pytest

from orderdesk.config.schema import OrdersConfig, StreamingConfig
from orderdesk.events.bus import EventBus
from orderdesk.state.lifecycle import OrderLifecycleEngine
from orderdesk.state.merchants import InMemoryMerchantDirectory
from orderdesk.state.store import InMemoryOrderStore
from orderdesk.streaming.manager import StreamManager
from orderdesk.time import ManualClock

from tests.fixtures.fakes import START, ManualScheduler, RecordingSink, make_merchant

# -------------------------
# Core components
# -------------------------

@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)

@pytest.fixture
def bus() -> EventBus:
    return EventBus()

@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()

@pytest.fixture
def merchants() -> InMemoryMerchantDirectory:
    return InMemoryMerchantDirectory([
        make_merchant(),
        make_merchant(merchant_id="m2", owner_user_id="owner-2", name="Noodle Cart"),
    ])

@pytest.fixture
def engine(store, merchants, bus, clock) -> OrderLifecycleEngine:
    return OrderLifecycleEngine(store, merchants, bus, clock, OrdersConfig())

@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()

@pytest.fixture
def streams(bus, store, scheduler, clock) -> StreamManager:
    return StreamManager(bus, store, scheduler, StreamingConfig(heartbeat_interval_seconds=10), clock)

@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()

# -------------------------
# Helpers
# -------------------------

@pytest.fixture
def place_order(engine):
    """Create an order for consumer u1 at merchant m1 (overridable)."""
    def _place(items=None, merchant_id="m1", consumer_id="u1", **kwargs):
        if items is None:
            items = [{"name": "Taco", "quantity": 2, "price": "5.00"}]
        return engine.create_order(merchant_id, consumer_id, items, **kwargs)
    return _place
