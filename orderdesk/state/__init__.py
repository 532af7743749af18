"""
Order state: model, status machine, lifecycle engine and collaborators.
"""

from .order_machine import (
    OrderStatus,
    OrderTransition,
    VALID_TRANSITIONS,
    TERMINAL_STATES,
    allowed_next,
    is_terminal,
    validate_transition,
)
from .order import Order, OrderItem, StatusEntry, compute_total, format_money
from .store import NewOrder, OrderStore, InMemoryOrderStore
from .merchants import (
    AccountStatus,
    DEFAULT_PICKUP_METHODS,
    InMemoryMerchantDirectory,
    KitchenStation,
    MenuItem,
    Merchant,
    MerchantDirectory,
    PickupMethod,
)
from .lifecycle import OrderLifecycleEngine

__all__ = [
    "OrderStatus",
    "OrderTransition",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "allowed_next",
    "is_terminal",
    "validate_transition",
    "Order",
    "OrderItem",
    "StatusEntry",
    "compute_total",
    "format_money",
    "NewOrder",
    "OrderStore",
    "InMemoryOrderStore",
    "AccountStatus",
    "DEFAULT_PICKUP_METHODS",
    "InMemoryMerchantDirectory",
    "KitchenStation",
    "MenuItem",
    "Merchant",
    "MerchantDirectory",
    "PickupMethod",
    "OrderLifecycleEngine",
]
