"""Time abstraction layer"""

from .clock import Clock, RealTimeClock, ManualClock, utc_now, ensure_utc, to_iso

__all__ = [
    'Clock',
    'RealTimeClock',
    'ManualClock',
    'utc_now',
    'ensure_utc',
    'to_iso',
]
