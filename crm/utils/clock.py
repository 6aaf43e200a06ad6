"""
Clock - injectable time source.

Services receive a Clock instead of calling ``datetime.now()`` so history
timestamps, due dates and billing dates are deterministic under test.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):
    """Abstract clock interface."""

    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware time."""
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Production clock returning the real UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Test clock frozen at a given instant until advanced."""

    def __init__(self, current: Optional[datetime] = None):
        self._current = current or datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by a timedelta given as keyword arguments."""
        self._current = self._current + timedelta(**kwargs)
        return self._current

    def set(self, current: datetime):
        self._current = current
