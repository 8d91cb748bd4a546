"""
Injectable time source.

Services and batch tasks take a ``Clock`` instead of calling
``datetime.now()`` so job timestamps and queue ordering are reproducible
under test.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, always timezone-aware."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen clock that only moves when ``advance()`` is called."""

    def __init__(self, fixed_time: datetime | None = None):
        self._now = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 1) -> None:
        self._now += timedelta(seconds=seconds)
