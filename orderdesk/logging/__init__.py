"""
Logging infrastructure for OrderDesk.

Features:
- JSON structured file logs, one rotating file per stream
- Correlation ID tracking (trace one order through engine, bus and streams)
- Multiple log streams (system, orders, events, streams, api)
- Human-readable console output
"""

from .logger import (
    get_logger,
    setup_logging,
    LogContext,
    log_performance,
    set_correlation_id,
    get_correlation_id,
    LogStream,
)

from .formatters import (
    JSONFormatter,
    ConsoleFormatter,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "LogContext",
    "log_performance",
    "set_correlation_id",
    "get_correlation_id",
    "LogStream",
    "JSONFormatter",
    "ConsoleFormatter",
]
