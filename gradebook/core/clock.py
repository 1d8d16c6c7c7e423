"""Injectable clock used for timestamps and year defaults."""

from datetime import date, datetime, timezone


class Clock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class FixedClock(Clock):
    """Clock frozen at a given instant."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self.instant = instant

    def now(self) -> datetime:
        return self.instant


_system_clock = Clock()


def get_clock() -> Clock:
    """Clock dependency; overridden in tests."""
    return _system_clock
