"""
In-process event bus for order notifications.

Provides thread-safe topic publish/subscribe with disposable subscriptions.
"""

from .bus import EventBus, Subscription
from .types import (
    EventKind,
    OrderEvent,
    order_topic,
    merchant_topic,
    user_topic,
)

__all__ = [
    "EventBus",
    "Subscription",
    "EventKind",
    "OrderEvent",
    "order_topic",
    "merchant_topic",
    "user_topic",
]
