"""
Order routes.

Handlers are ``async def`` so engine calls, bus dispatch and stream writes
all happen on the event loop thread. ``/api/orders/merchant*`` is declared
before ``/api/orders/{order_id}`` so "merchant" is never read as an id.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from orderdesk.api.deps import (
    current_identity,
    get_container,
    merchant_id_for,
    require_active,
    require_merchant,
)
from orderdesk.api.schemas import CreateOrderRequest, StatusUpdateRequest
from orderdesk.api.sse import open_sse
from orderdesk.auth import Identity
from orderdesk.di.container import Container
from orderdesk.logging import get_logger, LogStream

router = APIRouter()
logger = get_logger(LogStream.API)


@router.post("/api/orders", status_code=201)
async def create_order(
    body: CreateOrderRequest,
    container: Container = Depends(get_container),
    identity: Identity = Depends(current_identity),
):
    require_active(identity)
    order = container.get_engine().create_order(
        merchant_id=body.merchant_id,
        consumer_id=identity.user_id,
        items=body.items,
        table_number=body.table_number,
        pickup_method_id=body.pickup_method_id,
        note=body.note,
    )
    return {"message": "Order created", "order": order.to_dict()}


@router.get("/api/orders/my")
async def list_my_orders(
    container: Container = Depends(get_container),
    identity: Identity = Depends(current_identity),
):
    orders = container.get_engine().list_orders_for_consumer(identity.user_id)
    return {"count": len(orders), "orders": [o.to_dict() for o in orders]}


@router.get("/api/orders/merchant")
async def list_merchant_orders(
    status: Optional[str] = None,
    container: Container = Depends(get_container),
    identity: Identity = Depends(current_identity),
):
    merchant_id = require_merchant(container, identity)
    orders = container.get_engine().list_orders_for_merchant(merchant_id, status)
    return {"count": len(orders), "merchantId": merchant_id, "orders": [o.to_dict() for o in orders]}


@router.get("/api/orders/merchant/stream")
async def merchant_stream(
    request: Request,
    station: Optional[str] = None,
    container: Container = Depends(get_container),
    identity: Identity = Depends(current_identity),
):
    merchant_id = require_merchant(container, identity)
    manager = container.get_stream_manager()
    logger.info("Merchant stream requested", extra={"merchant_id": merchant_id, "station_id": station})
    return open_sse(
        request,
        container.get_config().streaming.outbox_max_frames,
        lambda sink: manager.open_merchant_stream(merchant_id, sink, station_id=station),
    )


@router.get("/api/orders/{order_id}")
async def get_order(
    order_id: str,
    container: Container = Depends(get_container),
    identity: Identity = Depends(current_identity),
):
    order = container.get_engine().get_order(
        order_id,
        acting_user_id=identity.user_id,
        acting_merchant_id=merchant_id_for(container, identity),
    )
    return order.to_dict()


@router.patch("/api/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    body: StatusUpdateRequest,
    container: Container = Depends(get_container),
    identity: Identity = Depends(current_identity),
):
    require_active(identity)
    merchant_id = require_merchant(container, identity)
    order = container.get_engine().transition_status(order_id, body.status, acting_merchant_id=merchant_id)
    return {"message": "Status updated", "order": order.to_dict()}


@router.patch("/api/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    container: Container = Depends(get_container),
    identity: Identity = Depends(current_identity),
):
    require_active(identity)
    order = container.get_engine().cancel_order(order_id, acting_consumer_id=identity.user_id)
    return {"message": "Order cancelled", "order": order.to_dict()}


@router.get("/api/orders/{order_id}/stream")
async def order_stream(
    order_id: str,
    request: Request,
    container: Container = Depends(get_container),
    identity: Identity = Depends(current_identity),
):
    manager = container.get_stream_manager()
    return open_sse(
        request,
        container.get_config().streaming.outbox_max_frames,
        lambda sink: manager.open_consumer_order_stream(order_id, identity.user_id, sink),
    )


@router.get("/health")
async def health(container: Container = Depends(get_container)):
    return {
        "status": "ok",
        "time": container.get_clock().now().isoformat(),
        "streams": container.get_stream_manager().get_stats(),
        "bus": container.get_event_bus().get_stats(),
    }
