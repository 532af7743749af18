"""
HTTP surface

INVARIANTS:
    - Domain errors map to their HTTP status with a JSON body naming the
      error kind; malformed bodies are 400, never 422.
    - Stream endpoints refuse (404/403) before any stream bytes are sent.
    - ``/api/orders/merchant`` is a route of its own, never an order id.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from orderdesk.api import create_app
from orderdesk.api.sse import QueueSink, drain, open_sse
from orderdesk.config.schema import ConfigSchema
from orderdesk.di import Container
from orderdesk.streaming.frames import HEARTBEAT_FRAME
from orderdesk.time import ManualClock

from tests.fixtures.fakes import START, ManualScheduler, RecordingSink


def _merchant(merchant_id, owner):
    return {
        "merchant_id": merchant_id,
        "owner_user_id": owner,
        "name": f"Merchant {merchant_id}",
        "pickup_methods": [
            {"id": "self_pickup", "label_en": "Self Pickup"},
            {"id": "table_delivery", "label_en": "Table Delivery", "requires_table_number": True},
        ],
        "kitchen_stations": [{"id": "S1", "name_en": "Grill"}, {"id": "S2", "name_en": "Drinks"}],
        "menu": [
            {"name": "Taco", "price": "5.00", "station_ids": ["S1"]},
            {"name": "Horchata", "price": "2.75", "station_ids": ["S2"]},
        ],
    }


CONFIG = {
    "logging": {"log_dir": None},
    "auth": {"tokens": [
        {"token": "consumer-token-u1", "user_id": "u1"},
        {"token": "consumer-token-u2", "user_id": "u2"},
        {"token": "banned-token-u3", "user_id": "u3", "account_status": "banned"},
        {"token": "merchant-token-m1", "user_id": "owner-1", "role": "merchant", "merchant_id": "m1"},
        # Resolved to m2 through the merchant directory
        {"token": "owner-token-m2", "user_id": "owner-2"},
    ]},
    "merchants": [_merchant("m1", "owner-1"), _merchant("m2", "owner-2")],
}

CONSUMER = {"Authorization": "Bearer consumer-token-u1"}
OTHER_CONSUMER = {"Authorization": "Bearer consumer-token-u2"}
BANNED = {"Authorization": "Bearer banned-token-u3"}
MERCHANT = {"Authorization": "Bearer merchant-token-m1"}
OTHER_MERCHANT = {"Authorization": "Bearer owner-token-m2"}

TACOS = {"merchantId": "m1", "items": [{"name": "Taco", "quantity": 2, "price": "5.00"}]}


@pytest.fixture
def container():
    c = Container()
    c.initialize(config=ConfigSchema.from_dict(CONFIG), clock=ManualClock(START), scheduler=ManualScheduler())
    return c


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture
def order_id(client):
    response = client.post("/api/orders", json=TACOS, headers=CONSUMER)
    assert response.status_code == 201
    return response.json()["order"]["orderId"]


class TestCreate:

    def test_create(self, client):
        response = client.post("/api/orders", json=TACOS, headers=CONSUMER)

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Order created"
        assert body["order"]["status"] == "pending"
        assert body["order"]["userId"] == "u1"
        assert body["order"]["total"] == "10.00"
        assert body["order"]["pickupMethod"] == "self_pickup"
        assert body["order"]["items"][0]["stationIds"] == ["S1"]

    def test_json_float_price_total(self, client):
        body = dict(TACOS, items=[{"name": "Taco", "qty": 2, "price": 5.00}])

        response = client.post("/api/orders", json=body, headers=CONSUMER)

        assert response.status_code == 201
        assert response.json()["order"]["total"] == "10.00"

    def test_snapshot_keys_are_camel_case(self, client):
        order = client.post("/api/orders", json=TACOS, headers=CONSUMER).json()["order"]

        assert {"orderId", "merchantId", "userId", "pickupMethod", "statusHistory", "createdAt"} <= set(order)
        assert not [key for key in order if "_" in key]
        assert not [key for key in order["items"][0] if "_" in key]

    def test_snake_case_request_keys_and_table(self, client):
        response = client.post("/api/orders", json={
            "merchant_id": "m1",
            "items": TACOS["items"],
            "pickup_method_id": "table_delivery",
            "table_number": 12,
        }, headers=CONSUMER)

        assert response.status_code == 201
        assert response.json()["order"]["tableNumber"] == "12"

    def test_table_required(self, client):
        response = client.post("/api/orders", json=dict(TACOS, pickupMethodId="table_delivery"), headers=CONSUMER)
        assert response.status_code == 400

    def test_requires_token(self, client):
        assert client.post("/api/orders", json=TACOS).status_code == 401

        response = client.post("/api/orders", json=TACOS, headers={"Authorization": "Bearer nope-nope-nope"})
        assert response.status_code == 401
        assert response.json()["error"] == "authentication_error"

    def test_banned_user_refused(self, client):
        response = client.post("/api/orders", json=TACOS, headers=BANNED)
        assert response.status_code == 403

    def test_empty_items(self, client):
        response = client.post("/api/orders", json={"merchantId": "m1", "items": []}, headers=CONSUMER)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_unknown_merchant(self, client):
        response = client.post("/api/orders", json=dict(TACOS, merchantId="m404"), headers=CONSUMER)
        assert response.status_code == 404

    def test_offline_merchant(self, client, container):
        container.get_merchant_directory().set_online("m1", False)
        response = client.post("/api/orders", json=TACOS, headers=CONSUMER)
        assert response.status_code == 403

    def test_malformed_body_is_400(self, client):
        response = client.post(
            "/api/orders",
            content="{not json",
            headers=dict(CONSUMER, **{"Content-Type": "application/json"}),
        )

        assert response.status_code == 400
        assert response.json()["reason"] == "Malformed request"


class TestReads:

    def test_my_orders(self, client, order_id):
        body = client.get("/api/orders/my", headers=CONSUMER).json()
        assert body["count"] == 1
        assert body["orders"][0]["orderId"] == order_id

        assert client.get("/api/orders/my", headers=OTHER_CONSUMER).json()["count"] == 0

    def test_merchant_route_is_not_an_order_id(self, client, order_id):
        response = client.get("/api/orders/merchant", headers=MERCHANT)

        assert response.status_code == 200
        body = response.json()
        assert body["merchantId"] == "m1"
        assert body["count"] == 1

    def test_merchant_status_filter(self, client, order_id):
        assert client.get("/api/orders/merchant?status=pending", headers=MERCHANT).json()["count"] == 1
        assert client.get("/api/orders/merchant?status=ready", headers=MERCHANT).json()["count"] == 0
        assert client.get("/api/orders/merchant?status=bogus", headers=MERCHANT).status_code == 400

    def test_merchant_list_requires_merchant(self, client):
        assert client.get("/api/orders/merchant", headers=CONSUMER).status_code == 403

    def test_owner_resolved_through_directory(self, client, order_id):
        body = client.get("/api/orders/merchant", headers=OTHER_MERCHANT).json()
        assert body["merchantId"] == "m2"
        assert body["count"] == 0

    def test_get_order(self, client, order_id):
        assert client.get(f"/api/orders/{order_id}", headers=CONSUMER).status_code == 200
        assert client.get(f"/api/orders/{order_id}", headers=MERCHANT).status_code == 200
        assert client.get(f"/api/orders/{order_id}", headers=OTHER_CONSUMER).status_code == 403
        assert client.get(f"/api/orders/{order_id}", headers=OTHER_MERCHANT).status_code == 403
        assert client.get("/api/orders/missing", headers=CONSUMER).status_code == 404


class TestStatus:

    def test_merchant_walks_lifecycle(self, client, order_id):
        for status in ("accepted", "preparing", "ready", "picked_up"):
            response = client.patch(f"/api/orders/{order_id}/status", json={"status": status}, headers=MERCHANT)
            assert response.status_code == 200
            assert response.json()["message"] == "Status updated"
            assert response.json()["order"]["status"] == status

    def test_invalid_transition_lists_allowed(self, client, order_id):
        response = client.patch(f"/api/orders/{order_id}/status", json={"status": "ready"}, headers=MERCHANT)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_transition"
        assert body["current"] == "pending"
        assert body["allowed"] == ["accepted", "rejected", "cancelled"]

    def test_other_merchant_refused(self, client, order_id):
        response = client.patch(f"/api/orders/{order_id}/status", json={"status": "accepted"}, headers=OTHER_MERCHANT)
        assert response.status_code == 403

    def test_consumer_refused(self, client, order_id):
        response = client.patch(f"/api/orders/{order_id}/status", json={"status": "accepted"}, headers=CONSUMER)
        assert response.status_code == 403

    def test_missing_status_is_400(self, client, order_id):
        response = client.patch(f"/api/orders/{order_id}/status", json={}, headers=MERCHANT)
        assert response.status_code == 400

    def test_unknown_order(self, client):
        response = client.patch("/api/orders/missing/status", json={"status": "accepted"}, headers=MERCHANT)
        assert response.status_code == 404


class TestCancel:

    def test_cancel_pending(self, client, order_id):
        response = client.patch(f"/api/orders/{order_id}/cancel", headers=CONSUMER)

        assert response.status_code == 200
        assert response.json()["message"] == "Order cancelled"
        assert response.json()["order"]["status"] == "cancelled"

    def test_cancel_after_accept(self, client, order_id):
        client.patch(f"/api/orders/{order_id}/status", json={"status": "accepted"}, headers=MERCHANT)

        response = client.patch(f"/api/orders/{order_id}/cancel", headers=CONSUMER)

        assert response.status_code == 400
        assert response.json()["current"] == "accepted"

    def test_other_consumer_cannot_cancel(self, client, order_id):
        assert client.patch(f"/api/orders/{order_id}/cancel", headers=OTHER_CONSUMER).status_code == 403


class TestStreamsAndHealth:

    def test_order_stream_unknown_order(self, client):
        response = client.get("/api/orders/missing/stream", headers=CONSUMER)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_order_stream_other_consumer(self, client, order_id, container):
        response = client.get(f"/api/orders/{order_id}/stream", headers=OTHER_CONSUMER)

        assert response.status_code == 403
        assert container.get_stream_manager().connection_count() == 0

    def test_merchant_stream_requires_merchant(self, client):
        assert client.get("/api/orders/merchant/stream", headers=CONSUMER).status_code == 403

    def test_health(self, client, order_id):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["streams"]["active_connections"] == 0
        assert body["bus"]["events_published"] == 3

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"
        assert client.get("/health").headers["X-Request-ID"]

    def test_shutdown_closes_streams(self, container):
        with TestClient(create_app(container)):
            conn = container.get_stream_manager().open_merchant_stream("m1", RecordingSink())

        assert conn.close_reason == "server_shutdown"

    def test_requires_initialized_container(self):
        with pytest.raises(RuntimeError):
            create_app(Container())


class _FakeRequest:

    def __init__(self):
        self.disconnected = False

    async def is_disconnected(self):
        return self.disconnected


class TestSseBridge:

    def test_drain_yields_connected_frame_events_and_heartbeats(self, container):
        manager = container.get_stream_manager()
        scheduler = manager.scheduler

        async def scenario():
            response = open_sse(_FakeRequest(), 100, lambda sink: manager.open_merchant_stream("m1", sink))
            body = response.body_iterator

            frames = [await body.__anext__()]
            container.get_engine().create_order("m1", "u1", [{"name": "Taco", "quantity": 1, "price": "5.00"}])
            frames.append(await body.__anext__())
            scheduler.tick()
            frames.append(await body.__anext__())

            manager.close_all()
            rest = [frame async for frame in body]
            return response, frames, rest

        response, frames, rest = asyncio.run(scenario())

        assert response.media_type == "text/event-stream"
        assert response.headers["cache-control"] == "no-cache"
        assert frames[0].startswith('data: {"type":"connected"')
        assert '"type":"order_created"' in frames[1]
        assert frames[2] == HEARTBEAT_FRAME
        assert rest == []
        assert manager.connection_count() == 0

    def test_client_disconnect_closes_connection(self, container, monkeypatch):
        manager = container.get_stream_manager()
        monkeypatch.setattr("orderdesk.api.sse.DISCONNECT_POLL_SECONDS", 0.01)

        async def scenario():
            request = _FakeRequest()
            sink = QueueSink(10)
            conn = manager.open_merchant_stream("m1", sink)
            body = drain(request, conn, sink)
            first = await body.__anext__()
            request.disconnected = True
            rest = [frame async for frame in body]
            return conn, first, rest

        conn, first, rest = asyncio.run(scenario())

        assert '"type":"connected"' in first
        assert rest == []
        assert conn.close_reason == "client_disconnect"
        assert container.get_event_bus().listener_count() == 0

    def test_full_outbox_closes_connection(self, container):
        manager = container.get_stream_manager()

        async def scenario():
            sink = QueueSink(1)
            conn = manager.open_merchant_stream("m1", sink)
            # Connected frame fills the outbox; the next event overflows it
            container.get_engine().create_order("m1", "u1", [{"name": "Taco", "quantity": 1, "price": "5.00"}])
            return conn

        conn = asyncio.run(scenario())

        assert conn.close_reason == "write_failed"
