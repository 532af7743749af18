"""
Live push streams for merchants and consumers.

Turns event bus activity into per-client server-sent-event streams with
station filtering, heartbeats and single-call teardown.
"""

from .connection import ConnectionState, StreamConnection, StreamKind
from .frames import HEARTBEAT_FRAME, SSE_HEADERS, SSE_MEDIA_TYPE, encode_data_frame
from .heartbeat import (
    AsyncioHeartbeatScheduler,
    HeartbeatHandle,
    HeartbeatScheduler,
    ThreadingHeartbeatScheduler,
)
from .manager import StreamManager, station_filter

__all__ = [
    "ConnectionState",
    "StreamConnection",
    "StreamKind",
    "HEARTBEAT_FRAME",
    "SSE_HEADERS",
    "SSE_MEDIA_TYPE",
    "encode_data_frame",
    "AsyncioHeartbeatScheduler",
    "HeartbeatHandle",
    "HeartbeatScheduler",
    "ThreadingHeartbeatScheduler",
    "StreamManager",
    "station_filter",
]
