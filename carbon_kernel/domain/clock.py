"""
Clock -- injectable time source.

Services receive a ``Clock`` through their constructor and never call
``datetime.now()`` themselves, so recorded-at defaults, overdue checks and
edit-history stamps are reproducible in tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Abstract clock. ``now()`` is always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall clock for production use."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value until ``advance()`` or ``set_time()``
    is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._time = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def set_time(self, time: datetime) -> None:
        self._time = time

    def advance(self, seconds: int = 0, *, hours: int = 0, days: int = 0) -> datetime:
        self._time += timedelta(seconds=seconds, hours=hours, days=days)
        return self._time
