"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock interface so that generation, repricing,
    status derivation and the scheduler never call ``datetime.now()``
    directly.  "Current period" and "local midnight" both come from here.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Failure modes:
    - zoneinfo.ZoneInfoNotFoundError if SystemClock is given an unknown
      IANA timezone name.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time receive a Clock instance via
        constructor injection.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current wall-clock time in the school's timezone."""
        ...

    def now_utc(self) -> datetime:
        """Get the current UTC time."""
        return self.now().astimezone(timezone.utc)


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Guarantees:
        Returns timezone-aware ``datetime`` instances in the configured
        timezone (UTC when none is given), so the month boundary follows
        the school's local calendar.
    """

    def __init__(self, tz: str | tzinfo | None = None):
        if isinstance(tz, str):
            tz = ZoneInfo(tz)
        self._tz = tz or timezone.utc

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until ``advance()``
          or ``set_time()`` is called.
        - ``tick()`` advances by exactly 1 second and returns the new time.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
