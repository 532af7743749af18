"""
Order lifecycle engine.

Owns the authoritative status-machine logic: validates new orders against
the merchant directory, enforces the transition table, stamps timestamps,
persists through the order store and publishes change events.

CRITICAL PROPERTIES:
1. Every mutation is validate -> persist -> publish; nothing is published
   unless the store accepted the write
2. A failed operation leaves the stored order untouched
3. Concurrent writers on one order are arbitrated by the store's
   compare-and-set; the loser gets InvalidTransitionError against the
   fresh status
4. All timestamps come from the injected clock
"""

from typing import Any, Iterable, List, Optional

from orderdesk.config.schema import OrdersConfig
from orderdesk.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionFailedError,
    StaleStatusError,
    ValidationError,
)
from orderdesk.events.bus import EventBus
from orderdesk.events.types import EventKind, OrderEvent, merchant_topic, order_topic, user_topic
from orderdesk.logging import get_logger, log_performance, LogContext, LogStream
from orderdesk.state.merchants import BLOCKED_ACCOUNT_STATUSES, Merchant, MerchantDirectory
from orderdesk.state.order import Order, OrderItem, StatusEntry, compute_total, format_money
from orderdesk.state.order_machine import (
    INITIAL_STATUS,
    STATUS_TIMESTAMP_FIELD,
    OrderStatus,
    allowed_next,
    validate_transition,
)
from orderdesk.state.store import NewOrder, OrderStore
from orderdesk.time import Clock, RealTimeClock


class OrderLifecycleEngine:
    """
    Creates orders and moves them through their lifecycle.

    USAGE:
        engine = OrderLifecycleEngine(store, merchants, bus, clock)
        order = engine.create_order("m1", "u1", [{"name": "Taco", "quantity": 2, "price": "3.50"}])
        order = engine.transition_status(order.order_id, "accepted", acting_merchant_id="m1")
    """

    def __init__(
        self,
        store: OrderStore,
        merchants: MerchantDirectory,
        bus: EventBus,
        clock: Optional[Clock] = None,
        config: Optional[OrdersConfig] = None,
    ):
        self.store = store
        self.merchants = merchants
        self.bus = bus
        self.clock = clock or RealTimeClock()
        self.config = config or OrdersConfig()
        self.logger = get_logger(LogStream.ORDERS)

    # ========================================================================
    # CREATE
    # ========================================================================

    @log_performance(LogStream.ORDERS)
    def create_order(
        self,
        merchant_id: str,
        consumer_id: str,
        items: Iterable[Any],
        table_number: Optional[str] = None,
        pickup_method_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Order:
        """
        Validate and persist a new pending order, then publish ``created``.

        Raises:
            ValidationError: malformed items, note or ids
            NotFoundError: merchant does not exist
            PreconditionFailedError: merchant offline or blocked (403),
                pickup method unknown/disabled or missing table number (400)
        """
        with LogContext():
            if not merchant_id:
                raise ValidationError("merchant_id is required", field="merchant_id")
            if not consumer_id:
                raise ValidationError("consumer_id is required", field="consumer_id")

            parsed_items = self._parse_items(items)
            note = self._normalize_note(note)
            table_number = self._normalize_table_number(table_number)

            merchant = self.merchants.get_merchant(merchant_id)
            if merchant is None:
                raise NotFoundError(f"Merchant {merchant_id} not found", merchant_id=merchant_id)
            self._check_merchant_accepting(merchant)

            method = merchant.resolve_pickup_method(pickup_method_id or self.config.default_pickup_method)
            if method.requires_table_number and not table_number:
                raise PreconditionFailedError(
                    f"Pickup method {method.id} requires a table number",
                    http_status=400,
                    pickup_method=method.id,
                )

            parsed_items = [self._inherit_stations(item, merchant) for item in parsed_items]
            now = self.clock.now()

            order = self.store.create_order(NewOrder(
                merchant_id=merchant_id,
                consumer_id=consumer_id,
                items=tuple(parsed_items),
                total=compute_total(parsed_items),
                pickup_method=method.id,
                created_at=now,
                table_number=table_number,
                note=note,
                status_history=(StatusEntry(INITIAL_STATUS, now),),
            ))

            self.logger.info("Order created", extra={
                "order_id": order.order_id,
                "merchant_id": merchant_id,
                "consumer_id": consumer_id,
                "item_count": len(order.items),
                "total": format_money(order.total),
                "pickup_method": order.pickup_method,
            })

            self._publish(EventKind.CREATED, order)
            return order

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    @log_performance(LogStream.ORDERS)
    def transition_status(self, order_id: str, requested_status: Any, acting_merchant_id: str) -> Order:
        """
        Move an order to requested_status on behalf of its merchant.

        Raises:
            NotFoundError: order does not exist
            AuthorizationError: acting merchant does not own the order
            PreconditionFailedError: merchant account is blocked (403)
            ValidationError: requested_status is not a known status
            InvalidTransitionError: requested_status not allowed from current
        """
        with LogContext(order_id):
            order = self._require_order(order_id)
            if not acting_merchant_id or order.merchant_id != acting_merchant_id:
                raise AuthorizationError(
                    "Order belongs to another merchant",
                    order_id=order_id,
                )

            merchant = self.merchants.get_merchant(order.merchant_id)
            if merchant is not None and merchant.account_status in BLOCKED_ACCOUNT_STATUSES:
                raise PreconditionFailedError(
                    f"Merchant account is {merchant.account_status.value}",
                    merchant_id=order.merchant_id,
                )

            requested = OrderStatus.parse(requested_status)
            validate_transition(order.status, requested)
            return self._apply(order, requested, allowed_next)

    def cancel_order(self, order_id: str, acting_consumer_id: str) -> Order:
        """
        Cancel a still-pending order on behalf of the consumer who placed it.

        Raises:
            NotFoundError: order does not exist
            AuthorizationError: acting consumer did not place the order
            InvalidTransitionError: order is no longer pending
        """
        with LogContext(order_id):
            order = self._require_order(order_id)
            if not acting_consumer_id or order.consumer_id != acting_consumer_id:
                raise AuthorizationError(
                    "Only the consumer who placed the order can cancel it",
                    order_id=order_id,
                )

            if order.status != OrderStatus.PENDING:
                raise self._cancel_refused(order.status)
            return self._apply(order, OrderStatus.CANCELLED, self._consumer_allowed)

    # ========================================================================
    # READS
    # ========================================================================

    def get_order(self, order_id: str, acting_user_id: str, acting_merchant_id: Optional[str] = None) -> Order:
        """
        Fetch one order for its consumer or its merchant.

        Raises:
            NotFoundError: order does not exist
            AuthorizationError: caller is neither owner
        """
        order = self._require_order(order_id)
        if acting_user_id and order.consumer_id == acting_user_id:
            return order
        if acting_merchant_id and order.merchant_id == acting_merchant_id:
            return order
        raise AuthorizationError("Not allowed to view this order", order_id=order_id)

    def list_orders_for_merchant(self, merchant_id: str, status: Any = None) -> List[Order]:
        """Merchant's orders, newest first, optionally filtered by status."""
        parsed = OrderStatus.parse(status) if status not in (None, "") else None
        return self.store.list_orders_for_merchant(merchant_id, parsed)

    def list_orders_for_consumer(self, consumer_id: str) -> List[Order]:
        """Consumer's orders, newest first."""
        return self.store.list_orders_for_user(consumer_id)

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _apply(self, order: Order, requested: OrderStatus, allowed_for_actor) -> Order:
        now = self.clock.now()
        timestamp_fields = {"updated_at": now}
        field_name = STATUS_TIMESTAMP_FIELD[requested]
        if field_name:
            timestamp_fields[field_name] = now

        try:
            updated = self.store.persist_transition(
                order.order_id,
                expected_status=order.status,
                new_status=requested,
                entry=StatusEntry(requested, now),
                timestamp_fields=timestamp_fields,
            )
        except StaleStatusError as e:
            fresh = self._require_order(order.order_id)
            self.logger.warning("Lost status race", extra={
                "order_id": order.order_id,
                "expected": e.expected,
                "actual": fresh.status.value,
                "requested": requested.value,
            })
            raise InvalidTransitionError(
                current=fresh.status.value,
                requested=requested.value,
                allowed=[s.value for s in allowed_for_actor(fresh.status)],
            ) from e

        self.logger.info(f"Order {order.status.value} -> {requested.value}", extra={
            "order_id": updated.order_id,
            "merchant_id": updated.merchant_id,
            "from_status": order.status.value,
            "to_status": requested.value,
        })

        self._publish(EventKind.STATUS_CHANGED, updated)
        return updated

    def _publish(self, kind: EventKind, order: Order) -> int:
        event = OrderEvent(
            kind=kind,
            order_id=order.order_id,
            merchant_id=order.merchant_id,
            consumer_id=order.consumer_id,
            order=order.to_dict(),
            timestamp=self.clock.now(),
        )
        delivered = 0
        for topic in (
            order_topic(order.order_id),
            merchant_topic(order.merchant_id),
            user_topic(order.consumer_id),
        ):
            delivered += self.bus.publish(topic, event)
        return delivered

    def _require_order(self, order_id: str) -> Order:
        if not order_id:
            raise ValidationError("order_id is required", field="order_id")
        order = self.store.get_order(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", order_id=order_id)
        return order

    @staticmethod
    def _consumer_allowed(status: OrderStatus) -> List[OrderStatus]:
        return [OrderStatus.CANCELLED] if status == OrderStatus.PENDING else []

    @staticmethod
    def _cancel_refused(current: OrderStatus) -> InvalidTransitionError:
        return InvalidTransitionError(
            current=current.value,
            requested=OrderStatus.CANCELLED.value,
            allowed=[],
            reason=f"Order can only be cancelled while pending (current: {current.value})",
        )

    @staticmethod
    def _check_merchant_accepting(merchant: Merchant) -> None:
        if not merchant.online:
            raise PreconditionFailedError(
                f"Merchant {merchant.merchant_id} is offline",
                merchant_id=merchant.merchant_id,
            )
        if merchant.account_status in BLOCKED_ACCOUNT_STATUSES:
            raise PreconditionFailedError(
                f"Merchant {merchant.merchant_id} is not accepting orders ({merchant.account_status.value})",
                merchant_id=merchant.merchant_id,
            )

    @staticmethod
    def _inherit_stations(item: OrderItem, merchant: Merchant) -> OrderItem:
        if item.station_ids:
            return item
        inherited = merchant.menu_station_ids(item.name)
        return item.with_station_ids(inherited) if inherited else item

    def _parse_items(self, items: Iterable[Any]) -> List[OrderItem]:
        if items is None or isinstance(items, (str, bytes)):
            raise ValidationError("items must be a non-empty list", field="items")
        try:
            raw_items = list(items)
        except TypeError:
            raise ValidationError("items must be a non-empty list", field="items") from None
        if not raw_items:
            raise ValidationError("Order must contain at least one item", field="items")
        if len(raw_items) > self.config.max_items:
            raise ValidationError(
                f"Order cannot contain more than {self.config.max_items} items",
                field="items",
            )
        return [OrderItem.from_input(raw, index) for index, raw in enumerate(raw_items)]

    def _normalize_note(self, note: Optional[str]) -> str:
        if note is None:
            return ""
        if not isinstance(note, str):
            raise ValidationError("note must be a string", field="note")
        note = note.strip()
        if len(note) > self.config.max_note_length:
            raise ValidationError(
                f"note must be at most {self.config.max_note_length} characters",
                field="note",
            )
        return note

    @staticmethod
    def _normalize_table_number(table_number: Any) -> Optional[str]:
        if table_number is None:
            return None
        if isinstance(table_number, bool) or not isinstance(table_number, (str, int)):
            raise ValidationError("table_number must be a string", field="table_number")
        value = str(table_number).strip()
        return value or None
