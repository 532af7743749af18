"""
Core logging module with structured logging and correlation ID tracking.

Architecture:
- Multiple log streams (system, orders, events, streams, api)
- JSON formatting for file output
- Human-readable console formatting for development
- Correlation ID propagation (order id / request id) via ContextVar
- Automatic rotation
"""

import functools
import logging
import logging.handlers
import time
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

# Context variable for correlation ID (safe across threads and asyncio tasks)
_correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

LOGGER_PREFIX = "orderdesk"


# ============================================================================
# LOG STREAM DEFINITIONS
# ============================================================================

class LogStream:
    """Log stream identifiers."""
    SYSTEM = "system"       # Startup, shutdown, wiring, config
    ORDERS = "orders"       # Order lifecycle (create, transition, cancel)
    EVENTS = "events"       # Event bus dispatch
    STREAMS = "streams"     # Push connections, heartbeats, teardown
    API = "api"             # HTTP surface

    ALL = (SYSTEM, ORDERS, EVENTS, STREAMS, API)


# ============================================================================
# CORRELATION ID MANAGEMENT
# ============================================================================

def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """
    Set correlation ID for current context.

    Args:
        correlation_id: Optional correlation ID. If None, generates new UUID.

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def get_correlation_id() -> Optional[str]:
    """Get correlation ID for current context."""
    return _correlation_id.get()


class LogContext:
    """
    Context manager for scoped correlation ID.

    Usage:
        with LogContext(order_id):
            logger.info("Transitioning order")  # Includes correlation_id
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id
        self._token = None

    def __enter__(self):
        self._token = _correlation_id.set(self.correlation_id or str(uuid.uuid4()))
        return _correlation_id.get()

    def __exit__(self, exc_type, exc_val, exc_tb):
        _correlation_id.reset(self._token)


# ============================================================================
# CUSTOM LOG RECORD FACTORY
# ============================================================================

_original_factory = logging.getLogRecordFactory()


def _correlation_id_factory(*args, **kwargs):
    """Custom log record factory that injects correlation ID."""
    record = _original_factory(*args, **kwargs)
    record.correlation_id = get_correlation_id()
    return record


logging.setLogRecordFactory(_correlation_id_factory)


# ============================================================================
# LOGGER SETUP
# ============================================================================

_loggers_initialized = False


def setup_logging(
    log_dir: Optional[Path] = Path("logs"),
    log_level: str = "INFO",
    console_level: str = "INFO",
    json_logs: bool = True,
    max_bytes: int = 10_000_000,  # 10MB
    backup_count: int = 5,
    force: bool = False,
) -> None:
    """
    Initialize logging infrastructure.

    Creates one rotating file per stream (logs/<stream>/<stream>.log) plus a
    console handler on the root logger. Passing ``log_dir=None`` disables
    file output (console only).

    Args:
        log_dir: Base directory for logs, or None for console only
        log_level: File logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        console_level: Console logging level
        json_logs: If True, use JSON formatting for files
        max_bytes: Max bytes per log file before rotation
        backup_count: Number of backup files to keep
        force: Re-initialize even if already set up
    """
    global _loggers_initialized

    if _loggers_initialized and not force:
        return

    from .formatters import JSONFormatter, ConsoleFormatter

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)  # Capture everything, filter at handler level
    root.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, console_level.upper()))
    console_handler.setFormatter(ConsoleFormatter())
    root.addHandler(console_handler)

    file_level = getattr(logging, log_level.upper())

    for stream in LogStream.ALL:
        logger = logging.getLogger(f"{LOGGER_PREFIX}.{stream}")
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(min(file_level, console_handler.level))
        logger.propagate = True  # Also send to root logger (console)

        if log_dir is None:
            continue

        stream_dir = Path(log_dir) / stream
        stream_dir.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            stream_dir / f"{stream}.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        handler.setLevel(file_level)

        if json_logs:
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(correlation_id)s - %(message)s'
            ))
        logger.addHandler(handler)

    _loggers_initialized = True

    get_logger(LogStream.SYSTEM).info(
        "Logging system initialized",
        extra={
            "log_dir": str(log_dir) if log_dir is not None else None,
            "log_level": log_level,
            "json_logs": json_logs
        }
    )


def get_logger(stream: str) -> logging.Logger:
    """
    Get logger for specific stream.

    Example:
        logger = get_logger(LogStream.ORDERS)
        logger.info("Order created", extra={"order_id": "123", "merchant_id": "m1"})
    """
    return logging.getLogger(f"{LOGGER_PREFIX}.{stream}")


# ============================================================================
# PERFORMANCE LOGGING DECORATOR
# ============================================================================

def log_performance(stream: str = LogStream.SYSTEM):
    """
    Decorator to log function execution time at DEBUG.

    Failures are recorded with their exception type and re-raised; callers
    own the decision of how loudly to log them.

    Usage:
        @log_performance(LogStream.ORDERS)
        def create_order(...):
            ...
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(stream)
            start = time.perf_counter()

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = time.perf_counter() - start
                logger.debug(
                    f"{func.__name__} failed",
                    extra={
                        "function": func.__name__,
                        "duration_ms": round(elapsed * 1000, 2),
                        "success": False,
                        "error_type": type(e).__name__
                    }
                )
                raise

            elapsed = time.perf_counter() - start
            logger.debug(
                f"{func.__name__} completed",
                extra={
                    "function": func.__name__,
                    "duration_ms": round(elapsed * 1000, 2),
                    "success": True
                }
            )
            return result

        return wrapper
    return decorator
