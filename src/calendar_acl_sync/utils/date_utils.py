"""Date and time utilities for Calendar ACL Sync application."""

import time
from datetime import datetime

import pytz


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(pytz.utc)


def elapsed_ms(started: float) -> int:
    """
    Milliseconds elapsed since a ``time.monotonic()`` reading.

    Args:
        started: Value previously returned by ``time.monotonic()``

    Returns:
        Whole milliseconds, never negative
    """
    return max(0, int((time.monotonic() - started) * 1000))
