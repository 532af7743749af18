"""
Order dataclasses for complete order representation.

LIFECYCLE:
1. Created with PENDING state, history seeded with (pending, created_at)
2. Merchant accepts or rejects; consumer may cancel while still pending
3. Accepted orders move through PREPARING -> READY -> PICKED_UP

INVARIANTS:
- status_history is append-only; its last entry always matches status
- total is computed once from the items and never recomputed
- order_id, merchant_id and consumer_id never change after creation
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from orderdesk.errors import ValidationError
from orderdesk.state.order_machine import OrderStatus, STATUS_TIMESTAMP_FIELD, TERMINAL_STATES
from orderdesk.time import to_iso

CENT = Decimal("0.01")


def _money(value: Any, field_name: str) -> Decimal:
    """Coerce a price to a Decimal in whole cents, rejecting bools, NaN and garbage."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number", field=field_name)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number", field=field_name) from None
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be finite", field=field_name)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal) -> str:
    """Fixed-point string with two decimals, never exponent notation."""
    return format(amount.quantize(CENT, rounding=ROUND_HALF_UP), "f")


@dataclass(frozen=True)
class OrderItem:
    """One ordered line: name, quantity >= 1, unit price >= 0."""
    name: str
    quantity: int
    price: Decimal
    note: Optional[str] = None
    station_ids: Tuple[str, ...] = ()

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    @classmethod
    def from_input(cls, raw: Any, index: int = 0) -> "OrderItem":
        """
        Build an item from caller input (mapping or OrderItem).

        Accepts ``qty`` as an alias of ``quantity`` and ``stationIds`` as an
        alias of ``station_ids``.

        Raises:
            ValidationError: missing name, quantity not an int > 0,
                price not a number >= 0
        """
        if isinstance(raw, OrderItem):
            raw = raw.to_dict()
        if not isinstance(raw, Mapping):
            raise ValidationError(f"items[{index}] must be an object", index=index)

        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(f"items[{index}] must have a name", index=index)

        quantity = raw.get("quantity", raw.get("qty"))
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"items[{index}] must have a quantity > 0", index=index)

        price = _money(raw.get("price"), f"items[{index}].price")
        if price < 0:
            raise ValidationError(f"items[{index}] must have a price >= 0", index=index)

        note = raw.get("note")
        if note is not None and not isinstance(note, str):
            raise ValidationError(f"items[{index}].note must be a string", index=index)

        station_ids = raw.get("station_ids", raw.get("stationIds")) or ()
        if not isinstance(station_ids, (list, tuple)) or not all(isinstance(s, str) for s in station_ids):
            raise ValidationError(f"items[{index}].station_ids must be a list of strings", index=index)

        return cls(
            name=name.strip(),
            quantity=quantity,
            price=price,
            note=note or None,
            station_ids=tuple(station_ids),
        )

    def with_station_ids(self, station_ids: Iterable[str]) -> "OrderItem":
        return replace(self, station_ids=tuple(station_ids))

    def routes_to(self, station_id: str) -> bool:
        """Untagged items go to every station; tagged items only to theirs."""
        return not self.station_ids or station_id in self.station_ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "quantity": self.quantity,
            "price": format_money(self.price),
            "note": self.note,
            "stationIds": list(self.station_ids),
        }


@dataclass(frozen=True)
class StatusEntry:
    """One (status, timestamp) record in an order's history."""
    status: OrderStatus
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "timestamp": to_iso(self.timestamp)}


def compute_total(items: Iterable[OrderItem]) -> Decimal:
    return sum((item.line_total for item in items), Decimal("0.00")).quantize(CENT)


@dataclass
class Order:
    """
    Complete order representation with state tracking.

    Timestamps are created by the caller with clock.now(), never
    auto-generated here.
    """
    # Identification
    order_id: str
    merchant_id: str
    consumer_id: str

    # Contents
    items: Tuple[OrderItem, ...]
    total: Decimal
    pickup_method: str
    table_number: Optional[str] = None
    note: str = ""

    # State tracking
    status: OrderStatus = OrderStatus.PENDING
    status_history: List[StatusEntry] = field(default_factory=list)

    # Timestamps
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    preparing_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def is_pending(self) -> bool:
        return self.status == OrderStatus.PENDING

    def timestamp_for(self, status: OrderStatus) -> Optional[datetime]:
        """Per-status timestamp (created_at for pending, None if the status has none)."""
        if status == OrderStatus.PENDING:
            return self.created_at
        field_name = STATUS_TIMESTAMP_FIELD[status]
        return getattr(self, field_name) if field_name else None

    def station_ids(self) -> List[str]:
        """Union of routing tags across all items, first-seen order."""
        seen: Dict[str, None] = {}
        for item in self.items:
            for station_id in item.station_ids:
                seen.setdefault(station_id, None)
        return list(seen)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready snapshot, camelCase keys like the frame envelope."""
        return {
            "orderId": self.order_id,
            "merchantId": self.merchant_id,
            "userId": self.consumer_id,
            "status": self.status.value,
            "items": [item.to_dict() for item in self.items],
            "tableNumber": self.table_number,
            "pickupMethod": self.pickup_method,
            "note": self.note,
            "total": format_money(self.total),
            "statusHistory": [entry.to_dict() for entry in self.status_history],
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
            "acceptedAt": to_iso(self.accepted_at),
            "preparingAt": to_iso(self.preparing_at),
            "readyAt": to_iso(self.ready_at),
            "pickedUpAt": to_iso(self.picked_up_at),
        }
