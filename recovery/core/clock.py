"""
Clock

Time source for the recovery flow. Injected so expiry and cooldown logic
can be exercised against a controlled clock.
"""

from datetime import datetime, timezone


class Clock:
    """Source of the current time (timezone-aware, UTC)."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


system_clock = SystemClock()
