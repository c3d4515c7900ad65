"""
Clock -- injectable time source.

Responsibility:
    Services that stamp receipts, links, lot start/completion times and
    trace results take a Clock instead of calling ``datetime.now()``.
    The lot-number date key is also derived from the injected clock, so
    a DeterministicClock makes lot numbers reproducible in tests.

Architecture position:
    Kernel > Domain -- zero I/O except SystemClock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...

    def now_utc(self) -> datetime:
        return self.now().astimezone(timezone.utc)


class SystemClock(Clock):
    """Production clock returning the actual UTC system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()``,
    ``tick()`` or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2025, 3, 14, 8, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return the new time."""
        self.advance(1)
        return self.now()
