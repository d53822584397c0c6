"""
Injectable UTC clock.

Components take ``clock: Clock | None`` and call it instead of reading the
system time directly, so tests can freeze or advance time.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)
