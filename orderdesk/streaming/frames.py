"""
Server-sent-events wire encoding.

Every event frame is one ``data: <json>\\n\\n`` block. The heartbeat is an SSE
comment line, which clients ignore.
"""

import json
from typing import Any, Dict, Optional

HEARTBEAT_FRAME = ": ping\n\n"

SSE_MEDIA_TYPE = "text/event-stream"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Stop nginx-style proxies from buffering the stream
    "X-Accel-Buffering": "no",
}


def encode_data_frame(payload: Dict[str, Any]) -> str:
    """Serialize payload as a single SSE data frame."""
    body = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)
    return f"data: {body}\n\n"


def merchant_connected_frame(merchant_id: str, station_id: Optional[str] = None) -> Dict[str, Any]:
    return {"type": "connected", "merchantId": merchant_id, "stationId": station_id}


def order_connected_frame(order: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "connected", "order": order}
