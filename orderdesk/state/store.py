"""
Order store collaborator: the system of record for persisted orders.

The lifecycle engine only talks to the OrderStore protocol. InMemoryOrderStore
is the reference implementation used by the service wiring and tests; a
relational store maps one row per order with the same operations.

PROPERTIES:
- Store assigns opaque order ids at creation
- Reads and writes copy, so callers never alias stored state
- persist_transition is a compare-and-set on the current status: the first
  writer wins and the loser gets StaleStatusError
- Thread-safe via lock
"""

from __future__ import annotations

import copy
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Tuple

from orderdesk.errors import NotFoundError, StaleStatusError
from orderdesk.logging import get_logger, LogStream
from orderdesk.state.order import Order, OrderItem, StatusEntry
from orderdesk.state.order_machine import OrderStatus


@dataclass(frozen=True)
class NewOrder:
    """Creation parameters handed to the store; the store assigns the id."""
    merchant_id: str
    consumer_id: str
    items: Tuple[OrderItem, ...]
    total: Decimal
    pickup_method: str
    created_at: datetime
    table_number: Optional[str] = None
    note: str = ""
    status_history: Tuple[StatusEntry, ...] = field(default_factory=tuple)


class OrderStore(Protocol):
    def create_order(self, new_order: NewOrder) -> Order: ...

    def get_order(self, order_id: str) -> Optional[Order]: ...

    def list_orders_for_merchant(self, merchant_id: str, status: Optional[OrderStatus] = None) -> List[Order]: ...

    def list_orders_for_user(self, consumer_id: str) -> List[Order]: ...

    def persist_transition(
        self,
        order_id: str,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        entry: StatusEntry,
        timestamp_fields: Mapping[str, datetime],
    ) -> Order: ...


_TIMESTAMP_FIELDS = {"updated_at", "accepted_at", "preparing_at", "ready_at", "picked_up_at"}


class InMemoryOrderStore:
    """
    Thread-safe in-memory order store.

    USAGE:
        store = InMemoryOrderStore()
        order = store.create_order(NewOrder(...))
        order = store.persist_transition(
            order.order_id,
            expected_status=OrderStatus.PENDING,
            new_status=OrderStatus.ACCEPTED,
            entry=StatusEntry(OrderStatus.ACCEPTED, now),
            timestamp_fields={"accepted_at": now, "updated_at": now},
        )
    """

    def __init__(self, id_factory: Optional[Callable[[], str]] = None):
        self.logger = get_logger(LogStream.ORDERS)
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._orders: Dict[str, Order] = {}
        self._lock = threading.Lock()

    def create_order(self, new_order: NewOrder) -> Order:
        with self._lock:
            order_id = self._id_factory()
            if order_id in self._orders:
                raise ValueError(f"Order {order_id} already exists")

            order = Order(
                order_id=order_id,
                merchant_id=new_order.merchant_id,
                consumer_id=new_order.consumer_id,
                items=tuple(new_order.items),
                total=new_order.total,
                pickup_method=new_order.pickup_method,
                table_number=new_order.table_number,
                note=new_order.note,
                status=OrderStatus.PENDING,
                status_history=list(new_order.status_history),
                created_at=new_order.created_at,
                updated_at=new_order.created_at,
            )
            self._orders[order_id] = order
            self.logger.debug("Stored order", extra={"order_id": order_id, "merchant_id": order.merchant_id})
            return copy.deepcopy(order)

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order is not None else None

    def list_orders_for_merchant(self, merchant_id: str, status: Optional[OrderStatus] = None) -> List[Order]:
        """Orders for a merchant, newest first, optionally filtered by status."""
        with self._lock:
            orders = [
                o for o in self._orders.values()
                if o.merchant_id == merchant_id and (status is None or o.status == status)
            ]
            return self._newest_first(orders)

    def list_orders_for_user(self, consumer_id: str) -> List[Order]:
        """Orders placed by a consumer, newest first."""
        with self._lock:
            return self._newest_first([o for o in self._orders.values() if o.consumer_id == consumer_id])

    def persist_transition(
        self,
        order_id: str,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        entry: StatusEntry,
        timestamp_fields: Mapping[str, datetime],
    ) -> Order:
        """
        Apply a validated transition if the order is still in expected_status.

        Raises:
            NotFoundError: order does not exist
            StaleStatusError: another writer changed the status first
            ValueError: entry does not match new_status, or unknown timestamp field
        """
        if entry.status != new_status:
            raise ValueError(f"History entry {entry.status.value} does not match {new_status.value}")
        unknown = set(timestamp_fields) - _TIMESTAMP_FIELDS
        if unknown:
            raise ValueError(f"Unknown timestamp fields: {sorted(unknown)}")

        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                raise NotFoundError(f"Order {order_id} not found", order_id=order_id)
            if current.status != expected_status:
                raise StaleStatusError(order_id, expected_status.value, current.status.value)

            updated = replace(
                current,
                status=new_status,
                status_history=[*current.status_history, entry],
                **dict(timestamp_fields),
            )
            self._orders[order_id] = updated
            return copy.deepcopy(updated)

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)

    @staticmethod
    def _newest_first(orders: List[Order]) -> List[Order]:
        ordered = sorted(orders, key=lambda o: o.created_at, reverse=True)
        return [copy.deepcopy(o) for o in ordered]
