"""
Streaming manager: turns bus activity into per-client push streams.

Merchant streams listen on ``merchant:<id>`` with an optional kitchen
station filter. Consumer streams listen on ``order:<id>`` for one order the
consumer placed. Every stream gets a connected frame first, then events,
with a heartbeat comment on a fixed interval.
"""

import threading
from typing import Any, Callable, Dict, List, Optional

from orderdesk.config.schema import StreamingConfig
from orderdesk.errors import AuthorizationError, NotFoundError, ValidationError
from orderdesk.events.bus import EventBus
from orderdesk.events.types import EventKind, merchant_topic, order_topic
from orderdesk.logging import get_logger, LogStream
from orderdesk.state.store import OrderStore
from orderdesk.streaming.connection import Sink, StreamConnection, StreamKind
from orderdesk.streaming.frames import merchant_connected_frame, order_connected_frame
from orderdesk.streaming.heartbeat import HeartbeatScheduler, ThreadingHeartbeatScheduler
from orderdesk.time import Clock, RealTimeClock


def station_filter(station_id: str) -> Callable[[Any], bool]:
    """
    Build the merchant-stream filter for one kitchen station.

    Only ``created`` events are filtered: they pass when at least one item
    has no routing tags or is tagged with the station. Status changes and
    updates always pass.
    """
    def _relevant(event: Any) -> bool:
        if event.kind != EventKind.CREATED:
            return True
        return any(not tags or station_id in tags for tags in event.item_station_ids())

    return _relevant


class StreamManager:
    """
    Opens, tracks and closes stream connections.

    USAGE:
        manager = StreamManager(bus, store, scheduler)
        conn = manager.open_merchant_stream("m1", sink=queue.put_nowait, station_id="grill")
        ...
        conn.close()          # on client disconnect
        manager.close_all()   # on shutdown
    """

    def __init__(
        self,
        bus: EventBus,
        store: OrderStore,
        scheduler: Optional[HeartbeatScheduler] = None,
        config: Optional[StreamingConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.bus = bus
        self.store = store
        self.scheduler = scheduler or ThreadingHeartbeatScheduler()
        self.config = config or StreamingConfig()
        self.clock = clock or RealTimeClock()
        self.logger = get_logger(LogStream.STREAMS)

        self._connections: Dict[str, StreamConnection] = {}
        self._lock = threading.Lock()
        self._opened_total = 0

    # ========================================================================
    # OPEN
    # ========================================================================

    def open_merchant_stream(self, merchant_id: str, sink: Sink, station_id: Optional[str] = None) -> StreamConnection:
        """
        Open a stream of a merchant's order events.

        Args:
            merchant_id: Merchant whose orders are streamed (already authorized)
            sink: Callable receiving encoded SSE text
            station_id: Optional kitchen station; filters ``created`` events
        """
        if not merchant_id:
            raise ValidationError("merchant_id is required", field="merchant_id")
        station_id = station_id or None

        connection = StreamConnection(
            kind=StreamKind.MERCHANT,
            topic=merchant_topic(merchant_id),
            owner_id=merchant_id,
            sink=sink,
            event_filter=station_filter(station_id) if station_id else None,
            station_id=station_id,
            clock=self.clock,
        )
        return self._open(connection, merchant_connected_frame(merchant_id, station_id))

    def open_consumer_order_stream(self, order_id: str, acting_consumer_id: str, sink: Sink) -> StreamConnection:
        """
        Open a stream of one order's events for the consumer who placed it.

        Raises:
            NotFoundError: order does not exist
            AuthorizationError: acting consumer did not place the order
        """
        order = self.store.get_order(order_id) if order_id else None
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", order_id=order_id)
        if not acting_consumer_id or order.consumer_id != acting_consumer_id:
            raise AuthorizationError("Not allowed to watch this order", order_id=order_id)

        connection = StreamConnection(
            kind=StreamKind.CONSUMER_ORDER,
            topic=order_topic(order_id),
            owner_id=acting_consumer_id,
            sink=sink,
            clock=self.clock,
        )
        return self._open(connection, order_connected_frame(order.to_dict()))

    def _open(self, connection: StreamConnection, connected_frame: Dict[str, Any]) -> StreamConnection:
        with self._lock:
            self._connections[connection.connection_id] = connection
            self._opened_total += 1
        connection.add_close_callback(self._forget)

        if not connection.send(connected_frame):
            # Client already gone; send() closed the connection
            return connection

        subscription = self.bus.subscribe(connection.topic, connection.on_event)
        heartbeat = self.scheduler.start(self.config.heartbeat_interval_seconds, connection.send_heartbeat)
        connection.attach(subscription, heartbeat)
        return connection

    def _forget(self, connection: StreamConnection) -> None:
        with self._lock:
            self._connections.pop(connection.connection_id, None)

    # ========================================================================
    # TRACKING / SHUTDOWN
    # ========================================================================

    def active_connections(self) -> List[StreamConnection]:
        with self._lock:
            return list(self._connections.values())

    def connection_count(self, merchant_id: Optional[str] = None) -> int:
        """Open connections, optionally only those on a merchant's topic."""
        with self._lock:
            if merchant_id is None:
                return len(self._connections)
            topic = merchant_topic(merchant_id)
            return sum(1 for c in self._connections.values() if c.topic == topic)

    def close_all(self, reason: str = "server_shutdown") -> int:
        """Close every open connection. Returns how many were closed."""
        closed = 0
        for connection in self.active_connections():
            if connection.close(reason=reason):
                closed += 1
        if closed:
            self.logger.info("Closed all streams", extra={"closed": closed, "reason": reason})
        return closed

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            merchant_streams = sum(1 for c in self._connections.values() if c.kind == StreamKind.MERCHANT)
            return {
                "active_connections": len(self._connections),
                "merchant_streams": merchant_streams,
                "consumer_streams": len(self._connections) - merchant_streams,
                "opened_total": self._opened_total,
            }
