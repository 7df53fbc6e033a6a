"""
Clock -- injectable time source.

Responsibility:
    Offer expiry, start-time checks and every recorded timestamp read the
    clock handed to the service, never ``datetime.now()``.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the only place the kernel reads
    wall-clock time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Monday morning, so "tomorrow" in tests is a working day.
DEFAULT_TEST_TIME = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """``now()`` returns a timezone-aware UTC datetime."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Guarantees:
        - Repeated ``now()`` calls return the same instant until
          ``advance()`` is called.
    """

    def __init__(self, start: datetime = DEFAULT_TEST_TIME):
        if start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start")
        self._now = start.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float | None = None, **delta: float) -> datetime:
        """
        Move forward by ``seconds`` and/or timedelta keywords (``hours=``,
        ``days=``); one second when called with nothing.  Returns the new time.
        """
        if seconds is None and not delta:
            seconds = 1
        self._now += timedelta(seconds=seconds or 0, **delta)
        return self._now
