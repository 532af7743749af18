"""
Order event definitions and topic naming.

Events are self-contained frozen dataclasses with timestamp last. The
lifecycle engine publishes each event to three topics: the order's own
channel, the owning merchant's channel and the owning consumer's channel.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict

from orderdesk.time import to_iso, utc_now


class EventKind(str, Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    UPDATED = "updated"

    @property
    def wire_type(self) -> str:
        """Frame ``type`` sent to stream clients, e.g. "order_created"."""
        return f"order_{self.value}"


# ============================================================================
# TOPICS
# ============================================================================

ORDER_TOPIC_PREFIX = "order:"
MERCHANT_TOPIC_PREFIX = "merchant:"
USER_TOPIC_PREFIX = "user:"


def order_topic(order_id: str) -> str:
    return f"{ORDER_TOPIC_PREFIX}{order_id}"


def merchant_topic(merchant_id: str) -> str:
    return f"{MERCHANT_TOPIC_PREFIX}{merchant_id}"


def user_topic(user_id: str) -> str:
    return f"{USER_TOPIC_PREFIX}{user_id}"


# ============================================================================
# ORDER EVENT
# ============================================================================

@dataclass(frozen=True)
class OrderEvent:
    """
    Emitted on order creation, status change or content update.

    ``order`` is the JSON-ready snapshot taken right after the change was
    persisted, so listeners never see a half-applied order.
    """
    kind: EventKind
    order_id: str
    merchant_id: str
    consumer_id: str
    order: Dict[str, Any]
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def status(self) -> str:
        return self.order.get("status", "")

    def item_station_ids(self):
        """Routing tags per item, in item order."""
        return [tuple(item.get("stationIds") or ()) for item in self.order.get("items", [])]

    def to_frame(self) -> Dict[str, Any]:
        """Wire payload pushed to stream clients."""
        return {
            "type": self.kind.wire_type,
            "orderId": self.order_id,
            "merchantId": self.merchant_id,
            "userId": self.consumer_id,
            "data": self.order,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "order_id": self.order_id,
            "merchant_id": self.merchant_id,
            "consumer_id": self.consumer_id,
            "order": self.order,
            "timestamp": to_iso(self.timestamp),
        }
