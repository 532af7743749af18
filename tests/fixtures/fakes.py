"""
Test doubles for streams and collaborators.

- ManualScheduler: heartbeat scheduler driven by tick()
- RecordingSink: captures SSE text, can be told to fail
- make_merchant(): merchant record with two stations and a small menu
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List

from orderdesk.state.merchants import KitchenStation, MenuItem, Merchant, PickupMethod
from orderdesk.streaming.frames import HEARTBEAT_FRAME
from orderdesk.streaming.heartbeat import HeartbeatHandle, HeartbeatScheduler

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class ManualHeartbeat(HeartbeatHandle):

    def __init__(self, interval: float, callback: Callable[[], None]):
        self.interval = interval
        self.callback = callback
        self.cancel_calls = 0
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self.cancel_calls += 1
        self._cancelled = True


class ManualScheduler(HeartbeatScheduler):
    """Heartbeats fire only when the test calls tick()."""

    def __init__(self):
        self.handles: List[ManualHeartbeat] = []

    def start(self, interval_seconds: float, callback: Callable[[], None]) -> HeartbeatHandle:
        handle = ManualHeartbeat(interval_seconds, callback)
        self.handles.append(handle)
        return handle

    @property
    def active(self) -> List[ManualHeartbeat]:
        return [h for h in self.handles if not h.cancelled]

    def tick(self, times: int = 1) -> None:
        for _ in range(times):
            for handle in self.active:
                handle.callback()


class RecordingSink:
    """Collects every frame written by a connection."""

    def __init__(self):
        self.frames: List[str] = []
        self.fail = False
        self.write_attempts = 0

    def __call__(self, text: str) -> None:
        self.write_attempts += 1
        if self.fail:
            raise BrokenPipeError("client went away")
        self.frames.append(text)

    @property
    def heartbeats(self) -> int:
        return sum(1 for f in self.frames if f == HEARTBEAT_FRAME)

    def payloads(self) -> List[Dict[str, Any]]:
        """Decoded JSON bodies of the data frames, in order."""
        decoded = []
        for frame in self.frames:
            if frame.startswith("data: "):
                decoded.append(json.loads(frame[len("data: "):].rstrip("\n")))
        return decoded

    def types(self) -> List[str]:
        return [p["type"] for p in self.payloads()]


def make_merchant(**overrides) -> Merchant:
    fields = dict(
        merchant_id="m1",
        owner_user_id="owner-1",
        name="Taco Truck",
        online=True,
        pickup_methods=[
            PickupMethod("self_pickup", "Self Pickup", "自取"),
            PickupMethod("table_delivery", "Table Delivery", "送餐到桌", requires_table_number=True),
            PickupMethod("drive_thru", "Drive Thru", "得来速", enabled=False),
        ],
        kitchen_stations=[
            KitchenStation("S1", "Grill"),
            KitchenStation("S2", "Drinks"),
        ],
        menu=[
            MenuItem("Taco", Decimal("5.00"), station_ids=("S1",)),
            MenuItem("Horchata", Decimal("2.75"), station_ids=("S2",)),
            MenuItem("Chips", Decimal("1.50")),
        ],
    )
    fields.update(overrides)
    return Merchant(**fields)
