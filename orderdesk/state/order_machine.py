"""
Order status machine: the static transition table and its guards.

CRITICAL RULES:
1. All transitions must be pre-defined in VALID_TRANSITIONS
2. PENDING is the only initial state
3. Terminal states (PICKED_UP, REJECTED, CANCELLED) have no outgoing edges
4. Invalid transitions raise InvalidTransitionError naming the allowed set

The table is a total function from status to allowed-next set (empty for
terminal states), so every (current, requested) pair can be enumerated.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Set, Tuple, Union

from orderdesk.errors import InvalidTransitionError, ValidationError


# ============================================================================
# ORDER STATUS ENUM
# ============================================================================

class OrderStatus(str, Enum):
    """Canonical order states, in lifecycle order."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    PREPARING = "preparing"
    READY = "ready"
    PICKED_UP = "picked_up"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Union[str, "OrderStatus", None]) -> "OrderStatus":
        """Coerce caller input to an OrderStatus or raise ValidationError."""
        if isinstance(value, OrderStatus):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Unknown order status: {value!r}",
                allowed=[s.value for s in cls],
            ) from None


INITIAL_STATUS = OrderStatus.PENDING


# ============================================================================
# TRANSITION DEFINITION
# ============================================================================

@dataclass(frozen=True)
class OrderTransition:
    """Immutable definition of a valid state transition."""
    from_state: OrderStatus
    to_state: OrderStatus
    description: str = ""


VALID_TRANSITIONS: Set[OrderTransition] = {
    OrderTransition(OrderStatus.PENDING, OrderStatus.ACCEPTED, "Merchant accepted"),
    OrderTransition(OrderStatus.PENDING, OrderStatus.REJECTED, "Merchant rejected"),
    OrderTransition(OrderStatus.PENDING, OrderStatus.CANCELLED, "Cancelled before acceptance"),
    OrderTransition(OrderStatus.ACCEPTED, OrderStatus.PREPARING, "Kitchen started"),
    OrderTransition(OrderStatus.PREPARING, OrderStatus.READY, "Ready for pickup"),
    OrderTransition(OrderStatus.READY, OrderStatus.PICKED_UP, "Handed to consumer"),
}

TERMINAL_STATES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.PICKED_UP,
    OrderStatus.REJECTED,
    OrderStatus.CANCELLED,
})

# Order-level timestamp stamped on entering a status. REJECTED and CANCELLED
# only move updated_at.
STATUS_TIMESTAMP_FIELD: Dict[OrderStatus, Optional[str]] = {
    OrderStatus.PENDING: None,
    OrderStatus.ACCEPTED: "accepted_at",
    OrderStatus.PREPARING: "preparing_at",
    OrderStatus.READY: "ready_at",
    OrderStatus.PICKED_UP: "picked_up_at",
    OrderStatus.REJECTED: None,
    OrderStatus.CANCELLED: None,
}

_TRANSITION_MAP: Dict[Tuple[OrderStatus, OrderStatus], OrderTransition] = {
    (t.from_state, t.to_state): t for t in VALID_TRANSITIONS
}

_STATUS_ORDER = {status: index for index, status in enumerate(OrderStatus)}

ALLOWED_NEXT: Dict[OrderStatus, Tuple[OrderStatus, ...]] = {
    status: tuple(sorted(
        (to for (frm, to) in _TRANSITION_MAP if frm == status),
        key=_STATUS_ORDER.__getitem__,
    ))
    for status in OrderStatus
}


# ============================================================================
# GUARDS
# ============================================================================

def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATES


def allowed_next(status: OrderStatus) -> List[OrderStatus]:
    """Allowed next statuses for ``status``, in lifecycle order."""
    return list(ALLOWED_NEXT[status])


def get_transition(from_state: OrderStatus, to_state: OrderStatus) -> Optional[OrderTransition]:
    return _TRANSITION_MAP.get((from_state, to_state))


def validate_transition(current: OrderStatus, requested: OrderStatus) -> OrderTransition:
    """
    Return the transition for (current, requested) or raise.

    Raises:
        InvalidTransitionError: requested is not in the allowed-next set
    """
    transition = _TRANSITION_MAP.get((current, requested))
    if transition is None:
        raise InvalidTransitionError(
            current=current.value,
            requested=requested.value,
            allowed=[s.value for s in ALLOWED_NEXT[current]],
        )
    return transition
