"""
In-process topic event bus for order notifications.

CRITICAL PROPERTIES:
1. Thread-safe registry (RLock)
2. Synchronous dispatch on the publisher's thread, in registration order
3. Snapshot-then-iterate: listeners added during a dispatch miss the
   in-flight event; listeners removed during a dispatch are neither skipped
   nor visited twice
4. Listener failures are isolated (logged, counted, never re-raised)
5. No listeners for a topic means the event is dropped silently

One bus instance is created by the wiring container and injected wherever
it is needed. There is no module-level bus.
"""

import threading
from typing import Any, Callable, Dict, List, Optional

from orderdesk.logging import get_logger, LogStream

Listener = Callable[[Any], None]


class Subscription:
    """
    Disposable handle returned by EventBus.subscribe().

    unsubscribe() is idempotent. Also usable as a context manager:

        with bus.subscribe("order:42", listener):
            ...
    """

    def __init__(self, bus: "EventBus", topic: str, listener: Listener):
        self.bus = bus
        self.topic = topic
        self.listener = listener
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> bool:
        """Remove the listener. Returns False if already unsubscribed."""
        with self._lock:
            if not self._active:
                return False
            self._active = False
        self.bus._remove(self)
        return True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()

    def __repr__(self) -> str:
        state = "active" if self._active else "closed"
        return f"Subscription(topic={self.topic!r}, {state})"


class EventBus:
    """
    Topic-keyed publish/subscribe.

    USAGE:
        bus = EventBus()
        sub = bus.subscribe(merchant_topic("m1"), on_event)
        bus.publish(merchant_topic("m1"), event)   # -> 1
        sub.unsubscribe()
    """

    def __init__(self):
        self.logger = get_logger(LogStream.EVENTS)

        # topic -> subscriptions in registration order
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._lock = threading.RLock()

        # Statistics
        self._events_published = 0
        self._deliveries = 0
        self._listener_failures = 0
        self._events_dropped = 0

    def subscribe(self, topic: str, listener: Listener) -> Subscription:
        """
        Register listener on topic.

        Args:
            topic: Topic name, e.g. "merchant:m1"
            listener: Callable that accepts the published event

        Returns:
            Subscription handle; call unsubscribe() to remove
        """
        if not topic:
            raise ValueError("topic must be a non-empty string")
        if not callable(listener):
            raise TypeError("listener must be callable")

        subscription = Subscription(self, topic, listener)
        with self._lock:
            self._subscriptions.setdefault(topic, []).append(subscription)
            count = len(self._subscriptions[topic])

        self.logger.debug(f"Listener subscribed to {topic}", extra={
            "topic": topic,
            "listener_count": count,
        })
        return subscription

    def publish(self, topic: str, event: Any) -> int:
        """
        Deliver event to every listener currently registered on topic.

        Returns:
            Number of listeners invoked (failures included)
        """
        with self._lock:
            self._events_published += 1
            snapshot = list(self._subscriptions.get(topic, ()))

        if not snapshot:
            with self._lock:
                self._events_dropped += 1
            self.logger.debug(f"No listeners for {topic}", extra={"topic": topic})
            return 0

        invoked = 0
        for subscription in snapshot:
            invoked += 1
            try:
                subscription.listener(event)
                with self._lock:
                    self._deliveries += 1
            except Exception as e:
                # Listener failure does NOT reach the publisher
                with self._lock:
                    self._listener_failures += 1
                self.logger.error(
                    f"Listener failed for {topic}",
                    extra={
                        "topic": topic,
                        "listener": getattr(subscription.listener, "__name__", repr(subscription.listener)),
                        "error": str(e),
                    },
                    exc_info=True,
                )

        return invoked

    def listener_count(self, topic: Optional[str] = None) -> int:
        """Listeners on topic, or across all topics when topic is None."""
        with self._lock:
            if topic is not None:
                return len(self._subscriptions.get(topic, ()))
            return sum(len(subs) for subs in self._subscriptions.values())

    def topics(self) -> List[str]:
        with self._lock:
            return list(self._subscriptions)

    def get_stats(self) -> Dict[str, int]:
        """
        Get event bus statistics.

        Returns:
            Dict with published, delivered, failed, dropped, topic and listener counts
        """
        with self._lock:
            return {
                "events_published": self._events_published,
                "deliveries": self._deliveries,
                "listener_failures": self._listener_failures,
                "events_dropped": self._events_dropped,
                "topics": len(self._subscriptions),
                "listeners": sum(len(subs) for subs in self._subscriptions.values()),
            }

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(subscription.topic)
            if not subs:
                return
            self._subscriptions[subscription.topic] = [s for s in subs if s is not subscription]
            if not self._subscriptions[subscription.topic]:
                del self._subscriptions[subscription.topic]

        self.logger.debug(f"Listener unsubscribed from {subscription.topic}", extra={
            "topic": subscription.topic,
        })
