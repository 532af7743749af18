"""
Event bus

INVARIANTS:
    - Every listener registered on a topic at publish time is invoked
      exactly once, in registration order.
    - Publishing on one topic never reaches another topic's listeners.
    - A raising listener is logged and counted; the publisher and the
      remaining listeners are unaffected.
    - Dispatch iterates a snapshot: a listener added mid-dispatch misses the
      in-flight event, a listener removed mid-dispatch is not skipped.
"""

import pytest

from orderdesk.events.bus import EventBus
from orderdesk.events.types import EventKind, OrderEvent, merchant_topic, order_topic, user_topic


def _event(order_id="o1", kind=EventKind.CREATED):
    return OrderEvent(kind=kind, order_id=order_id, merchant_id="m1", consumer_id="u1", order={"status": "pending"})


class TestDelivery:

    def test_two_listeners_receive_event_once_in_order(self, bus):
        calls = []
        bus.subscribe("merchant:m1", lambda e: calls.append(("L1", e)))
        bus.subscribe("merchant:m1", lambda e: calls.append(("L2", e)))

        event = _event()
        invoked = bus.publish("merchant:m1", event)

        assert invoked == 2
        assert calls == [("L1", event), ("L2", event)]

    def test_topics_are_isolated(self, bus):
        seen = []
        bus.subscribe("merchant:m1", seen.append)

        bus.publish("merchant:m2", _event())
        bus.publish("order:o1", _event())

        assert seen == []

    def test_publish_without_listeners_is_dropped(self, bus):
        assert bus.publish("merchant:nobody", _event()) == 0

        stats = bus.get_stats()
        assert stats["events_published"] == 1
        assert stats["events_dropped"] == 1
        assert stats["deliveries"] == 0

    def test_same_listener_twice_is_called_twice(self, bus):
        seen = []
        bus.subscribe("t", seen.append)
        bus.subscribe("t", seen.append)

        bus.publish("t", "x")

        assert seen == ["x", "x"]

    @pytest.mark.parametrize("topic", ["", None])
    def test_subscribe_requires_topic(self, bus, topic):
        with pytest.raises(ValueError):
            bus.subscribe(topic, lambda e: None)

    def test_subscribe_requires_callable(self, bus):
        with pytest.raises(TypeError):
            bus.subscribe("t", "not callable")


class TestListenerFailure:

    def test_raising_listener_does_not_reach_publisher(self, bus):
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        bus.subscribe("t", broken)
        bus.subscribe("t", seen.append)

        invoked = bus.publish("t", "evt")

        assert invoked == 2
        assert seen == ["evt"]
        stats = bus.get_stats()
        assert stats["listener_failures"] == 1
        assert stats["deliveries"] == 1

    def test_failure_is_logged(self, bus, caplog):
        def broken(event):
            raise RuntimeError("listener bug")

        bus.subscribe("t", broken)
        with caplog.at_level("ERROR"):
            bus.publish("t", "evt")

        assert any("Listener failed for t" in r.getMessage() for r in caplog.records)


class TestMidDispatchChanges:

    def test_listener_added_during_dispatch_misses_in_flight_event(self, bus):
        late = []

        def adder(event):
            bus.subscribe("t", late.append)

        bus.subscribe("t", adder)
        bus.publish("t", "first")

        assert late == []

        bus.publish("t", "second")
        assert late == ["second"]

    def test_listener_removed_during_dispatch_is_not_skipped(self, bus):
        seen = []
        holder = {}

        def remover(event):
            holder["sub"].unsubscribe()

        bus.subscribe("t", remover)
        holder["sub"] = bus.subscribe("t", seen.append)

        bus.publish("t", "first")
        assert seen == ["first"]

        bus.publish("t", "second")
        assert seen == ["first"]

    def test_listener_can_unsubscribe_itself(self, bus):
        seen = []
        holder = {}

        def once(event):
            seen.append(event)
            holder["sub"].unsubscribe()

        holder["sub"] = bus.subscribe("t", once)
        bus.publish("t", 1)
        bus.publish("t", 2)

        assert seen == [1]
        assert bus.listener_count("t") == 0


class TestSubscription:

    def test_unsubscribe_is_idempotent(self, bus):
        sub = bus.subscribe("t", lambda e: None)

        assert sub.active
        assert sub.unsubscribe() is True
        assert sub.unsubscribe() is False
        assert not sub.active
        assert bus.listener_count("t") == 0
        assert "t" not in bus.topics()

    def test_unsubscribe_removes_only_that_registration(self, bus):
        seen = []
        first = bus.subscribe("t", seen.append)
        bus.subscribe("t", seen.append)

        first.unsubscribe()
        bus.publish("t", "x")

        assert seen == ["x"]
        assert bus.listener_count("t") == 1

    def test_context_manager_unsubscribes(self, bus):
        seen = []
        with bus.subscribe("t", seen.append) as sub:
            bus.publish("t", 1)
        bus.publish("t", 2)

        assert seen == [1]
        assert not sub.active

    def test_listener_counts(self, bus):
        bus.subscribe("a", lambda e: None)
        bus.subscribe("a", lambda e: None)
        bus.subscribe("b", lambda e: None)

        assert bus.listener_count("a") == 2
        assert bus.listener_count() == 3
        assert sorted(bus.topics()) == ["a", "b"]
        assert bus.get_stats()["topics"] == 2


class TestOrderEvent:

    def test_topic_names(self):
        assert order_topic("o1") == "order:o1"
        assert merchant_topic("m1") == "merchant:m1"
        assert user_topic("u1") == "user:u1"

    def test_frame_carries_wire_type_and_ids(self):
        event = _event(kind=EventKind.STATUS_CHANGED)
        frame = event.to_frame()

        assert frame == {
            "type": "order_status_changed",
            "orderId": "o1",
            "merchantId": "m1",
            "userId": "u1",
            "data": {"status": "pending"},
        }
        assert event.status == "pending"

    def test_item_station_ids(self):
        event = OrderEvent(
            kind=EventKind.CREATED,
            order_id="o1",
            merchant_id="m1",
            consumer_id="u1",
            order={"items": [{"stationIds": ["S1"]}, {"stationIds": []}, {}]},
        )
        assert event.item_station_ids() == [("S1",), (), ()]
