"""
Formatters for the per-stream JSON files and the console.

Both read ``correlation_id`` from the record (set by the record factory in
logger.py) and everything passed through ``extra=`` by the engine and
stream manager.
"""

import json
import logging
import time
import traceback

# Attributes every LogRecord carries; anything else on the record came from extra=
_RECORD_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "correlation_id", "stream", "corr"}


def record_extra(record: logging.LogRecord) -> dict:
    return {k: v for k, v in vars(record).items() if k not in _RECORD_FIELDS and not k.startswith("_")}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    Keys: timestamp (UTC, Z suffix), level, logger, correlation_id, message,
    then ``extra`` when the call passed fields, ``exception`` when
    exc_info is set and ``source`` for WARNING and above.
    """

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": f"{self.formatTime(record, '%Y-%m-%dT%H:%M:%S')}.{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", None),
            "message": record.getMessage(),
        }
        extra = record_extra(record)
        if extra:
            entry["extra"] = extra
        if record.exc_info:
            exc_type, exc, tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": "".join(traceback.format_exception(exc_type, exc, tb)),
            }
        if record.levelno >= logging.WARNING:
            entry["source"] = {"file": record.pathname, "line": record.lineno, "function": record.funcName}
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """``12:00:05 INFO    ORDERS   [order-1a] Order created``"""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(stream)-8s%(corr)s %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        record.stream = record.name.rpartition(".")[2].upper()
        corr = getattr(record, "correlation_id", None)
        record.corr = f" [{corr[:8]}]" if corr else ""
        return super().format(record)
