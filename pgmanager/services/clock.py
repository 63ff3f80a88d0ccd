"""Injectable time source.

Services read "now" only through a Clock so due-date, overdue and proration
logic can be exercised at any simulated moment.
"""

from datetime import date, datetime, timedelta, timezone


class Clock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Clock backed by the system time."""


class FixedClock(Clock):
    """Clock frozen at a given instant; advance() moves it forward."""

    def __init__(self, current: datetime):
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        """Move the clock forward by a timedelta built from kwargs (days=, hours=, ...)."""
        self.current = self.current + timedelta(**kwargs)


__all__ = ["Clock", "SystemClock", "FixedClock"]
