"""Wall-clock time sources."""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Naive UTC now, matching the datetimes Motor hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock(ABC):
    """Time source used by the services."""

    @abstractmethod
    def now(self) -> datetime:
        """Current naive UTC time."""


class SystemClock(Clock):
    """Clock backed by the system time."""

    def now(self) -> datetime:
        return utcnow()


class FrozenClock(Clock):
    """Clock that only moves when told to. Used by tests and scripts."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by the given timedelta keyword arguments."""
        self.current = self.current + timedelta(**kwargs)
        return self.current
