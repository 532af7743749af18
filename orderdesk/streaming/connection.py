"""
One open push stream and everything it owns.

A StreamConnection bundles the bus subscription, the heartbeat handle and
any close callbacks so teardown is a single idempotent close().

STATE MACHINE:
    OPENING -> CONNECTED -> CLOSED
    OPENING -> CLOSED        (connected frame could not be written)
"""

import threading
import uuid
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from orderdesk.events.bus import Subscription
from orderdesk.logging import get_logger, LogStream
from orderdesk.streaming.frames import HEARTBEAT_FRAME, encode_data_frame
from orderdesk.streaming.heartbeat import HeartbeatHandle
from orderdesk.time import Clock, RealTimeClock, to_iso

Sink = Callable[[str], None]
EventFilter = Callable[[Any], bool]


class ConnectionState(str, Enum):
    OPENING = "opening"
    CONNECTED = "connected"
    CLOSED = "closed"


class StreamKind(str, Enum):
    MERCHANT = "merchant"
    CONSUMER_ORDER = "consumer_order"


class StreamConnection:
    """
    Owned bundle for one client stream.

    The sink receives fully encoded SSE text. A sink that raises is treated
    as a dead client: the connection closes itself and stops writing.
    """

    def __init__(
        self,
        kind: StreamKind,
        topic: str,
        owner_id: str,
        sink: Sink,
        event_filter: Optional[EventFilter] = None,
        station_id: Optional[str] = None,
        clock: Optional[Clock] = None,
        connection_id: Optional[str] = None,
    ):
        self.connection_id = connection_id or uuid.uuid4().hex[:12]
        self.kind = kind
        self.topic = topic
        self.owner_id = owner_id
        self.station_id = station_id
        self._sink = sink
        self._filter = event_filter
        self._clock = clock or RealTimeClock()
        self.logger = get_logger(LogStream.STREAMS)

        self._state = ConnectionState.OPENING
        self._lock = threading.RLock()
        self._subscription: Optional[Subscription] = None
        self._heartbeat: Optional[HeartbeatHandle] = None
        self._close_callbacks: List[Callable[["StreamConnection"], None]] = []
        self.close_reason: Optional[str] = None

        self.opened_at = self._clock.now()
        self.closed_at = None
        self.frames_sent = 0
        self.heartbeats_sent = 0
        self.events_suppressed = 0

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state != ConnectionState.CLOSED

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription

    @property
    def heartbeat(self) -> Optional[HeartbeatHandle]:
        return self._heartbeat

    def attach(self, subscription: Subscription, heartbeat: HeartbeatHandle) -> None:
        """Take ownership of subscription and heartbeat; OPENING -> CONNECTED."""
        with self._lock:
            if self._state == ConnectionState.CLOSED:
                closed = True
            else:
                closed = False
                self._subscription = subscription
                self._heartbeat = heartbeat
                self._state = ConnectionState.CONNECTED

        if closed:
            # Closed while opening; release what was handed over
            subscription.unsubscribe()
            heartbeat.cancel()
            return

        self.logger.info("Stream connected", extra={
            "connection_id": self.connection_id,
            "stream_kind": self.kind.value,
            "topic": self.topic,
            "owner_id": self.owner_id,
            "station_id": self.station_id,
        })

    def add_close_callback(self, callback: Callable[["StreamConnection"], None]) -> None:
        """Register callback(connection), run once on close (immediately if already closed)."""
        with self._lock:
            if self._state != ConnectionState.CLOSED:
                self._close_callbacks.append(callback)
                return
        callback(self)

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def send(self, payload: Dict[str, Any]) -> bool:
        """Write one data frame. Returns False if the connection is (now) closed."""
        return self._write(encode_data_frame(payload))

    def send_heartbeat(self) -> bool:
        sent = self._write(HEARTBEAT_FRAME)
        if sent:
            self.heartbeats_sent += 1
        return sent

    def on_event(self, event: Any) -> None:
        """Bus listener: filter, then push the event frame."""
        if not self.is_open:
            return
        if self._filter is not None and not self._filter(event):
            self.events_suppressed += 1
            return
        self.send(event.to_frame())

    def _write(self, text: str) -> bool:
        if not self.is_open:
            return False
        try:
            self._sink(text)
        except Exception as e:
            self.logger.warning("Stream write failed, closing connection", extra={
                "connection_id": self.connection_id,
                "topic": self.topic,
                "error": str(e),
            })
            self.close(reason="write_failed")
            return False
        self.frames_sent += 1
        return True

    # ------------------------------------------------------------------
    # teardown
    # ------------------------------------------------------------------

    def close(self, reason: str = "client_disconnect") -> bool:
        """
        Tear the connection down. Idempotent.

        Unsubscribes and cancels the heartbeat together, then runs close
        callbacks once. Returns False if already closed.
        """
        with self._lock:
            if self._state == ConnectionState.CLOSED:
                return False
            self._state = ConnectionState.CLOSED
            self.close_reason = reason
            self.closed_at = self._clock.now()
            subscription, self._subscription = self._subscription, None
            heartbeat, self._heartbeat = self._heartbeat, None
            callbacks, self._close_callbacks = self._close_callbacks, []

        if subscription is not None:
            subscription.unsubscribe()
        if heartbeat is not None:
            heartbeat.cancel()

        for callback in callbacks:
            try:
                callback(self)
            except Exception:
                self.logger.error("Close callback failed", extra={
                    "connection_id": self.connection_id,
                }, exc_info=True)

        self.logger.info("Stream closed", extra={
            "connection_id": self.connection_id,
            "topic": self.topic,
            "reason": reason,
            "frames_sent": self.frames_sent,
        })
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "kind": self.kind.value,
            "topic": self.topic,
            "owner_id": self.owner_id,
            "station_id": self.station_id,
            "state": self._state.value,
            "opened_at": to_iso(self.opened_at),
            "frames_sent": self.frames_sent,
            "heartbeats_sent": self.heartbeats_sent,
            "events_suppressed": self.events_suppressed,
        }

    def __repr__(self) -> str:
        return f"StreamConnection({self.connection_id}, {self.topic}, {self._state.value})"
