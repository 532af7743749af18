"""
Recurring heartbeat timers for open streams.

A scheduler starts a repeating callback and hands back a handle whose
cancel() stops it for good. The HTTP server uses the asyncio scheduler;
threaded hosts use the threading one; tests drive a manual scheduler.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from orderdesk.logging import get_logger, LogStream

logger = get_logger(LogStream.STREAMS)


class HeartbeatHandle(ABC):
    """Cancellable handle for one recurring heartbeat."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop the heartbeat. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class HeartbeatScheduler(ABC):

    @abstractmethod
    def start(self, interval_seconds: float, callback: Callable[[], None]) -> HeartbeatHandle:
        """Invoke callback every interval_seconds until the handle is cancelled."""
        pass


# ============================================================================
# ASYNCIO
# ============================================================================

class _LoopHeartbeat(HeartbeatHandle):

    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, callback: Callable[[], None]):
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._timer: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _schedule(self) -> None:
        if not self._cancelled:
            self._timer = self._loop.call_later(self._interval, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        try:
            self._callback()
        except Exception:
            logger.error("Heartbeat callback failed", exc_info=True)
        self._schedule()

    def cancel(self) -> None:
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class AsyncioHeartbeatScheduler(HeartbeatScheduler):
    """
    Schedules heartbeats on an asyncio event loop with call_later.

    Must be used from the loop's thread (the HTTP handlers are async, so
    they are).
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def start(self, interval_seconds: float, callback: Callable[[], None]) -> HeartbeatHandle:
        loop = self._loop or asyncio.get_running_loop()
        handle = _LoopHeartbeat(loop, interval_seconds, callback)
        handle._schedule()
        return handle


# ============================================================================
# THREADING
# ============================================================================

class _ThreadHeartbeat(HeartbeatHandle):

    def __init__(self, interval: float, callback: Callable[[], None]):
        self._interval = interval
        self._callback = callback
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="StreamHeartbeat", daemon=True)

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._callback()
            except Exception:
                logger.error("Heartbeat callback failed", exc_info=True)

    def cancel(self) -> None:
        self._stop.set()


class ThreadingHeartbeatScheduler(HeartbeatScheduler):
    """One daemon thread per heartbeat; for hosts without an event loop."""

    def start(self, interval_seconds: float, callback: Callable[[], None]) -> HeartbeatHandle:
        handle = _ThreadHeartbeat(interval_seconds, callback)
        handle._thread.start()
        return handle
