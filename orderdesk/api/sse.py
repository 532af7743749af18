"""
Bridge a StreamConnection onto a Starlette StreamingResponse.

The connection writes into a per-connection asyncio.Queue (the outbox);
the response body drains it. Everything runs on the event loop thread.
A full outbox means the client stopped reading, so the write raises and the
connection closes itself.
"""

import asyncio
from typing import AsyncIterator, Callable

from fastapi import Request
from fastapi.responses import StreamingResponse

from orderdesk.streaming.connection import Sink, StreamConnection
from orderdesk.streaming.frames import SSE_HEADERS, SSE_MEDIA_TYPE

_CLOSED = object()

DISCONNECT_POLL_SECONDS = 1.0


class QueueSink:
    """Sink writing encoded frames into a bounded asyncio.Queue."""

    def __init__(self, max_frames: int):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_frames)

    def __call__(self, text: str) -> None:
        self.queue.put_nowait(text)

    def wake(self, _connection: StreamConnection) -> None:
        """Close callback: unblock the reader."""
        try:
            self.queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # Reader sees the closed connection after draining
            pass


async def drain(request: Request, connection: StreamConnection, sink: QueueSink) -> AsyncIterator[str]:
    """Yield frames until the connection closes or the client goes away."""
    try:
        while connection.is_open or not sink.queue.empty():
            try:
                frame = await asyncio.wait_for(sink.queue.get(), timeout=DISCONNECT_POLL_SECONDS)
            except asyncio.TimeoutError:
                if await request.is_disconnected():
                    break
                continue
            if frame is _CLOSED:
                break
            yield frame
    finally:
        connection.close(reason="client_disconnect")


def open_sse(
    request: Request,
    max_frames: int,
    open_stream: Callable[[Sink], StreamConnection],
) -> StreamingResponse:
    """
    Open a stream via open_stream(sink) and wrap it in an SSE response.

    Errors raised by open_stream (not found, not authorized) propagate
    before any response bytes are sent.
    """
    sink = QueueSink(max_frames)
    connection = open_stream(sink)
    connection.add_close_callback(sink.wake)
    return StreamingResponse(
        drain(request, connection, sink),
        media_type=SSE_MEDIA_TYPE,
        headers=dict(SSE_HEADERS),
    )
