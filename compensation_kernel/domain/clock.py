"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock interface so that engine and service code
    never call ``datetime.now()`` or ``date.today()`` directly, and a
    cooperative ``Deadline`` checked between units of calculation work.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock and
    the default monotonic source of Deadline, the sanctioned time boundaries).

Failure modes:
    - Deadline.check raises ComputationTimeoutError once expired.

Audit relevance:
    "Today" decides which absences are still inside their grace window and
    whether a date is in the future. Injecting it keeps every salary figure
    reproducible.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from compensation_kernel.exceptions import ComputationTimeoutError


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
        - ``now_utc()`` returns a UTC-normalized ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    @abstractmethod
    def now_utc(self) -> datetime:
        """Get the current UTC time."""
        ...


class SystemClock(Clock):
    """Production clock that returns actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until ``advance()``
          or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def now_utc(self) -> datetime:
        return self.now().astimezone(timezone.utc)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds


class Deadline:
    """
    Cooperative deadline for one calculation.

    The calculation calls ``check()`` between units of work (sub-ranges,
    class-days); nothing is interrupted preemptively.
    """

    def __init__(
        self,
        timeout_seconds: float | None,
        operation: str = "calculation",
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.timeout_seconds = timeout_seconds
        self.operation = operation
        self._monotonic = monotonic
        self._expires_at = (
            monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    @classmethod
    def unbounded(cls, operation: str = "calculation") -> "Deadline":
        return cls(None, operation)

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._monotonic() >= self._expires_at

    def remaining(self) -> float | None:
        """Seconds left, or None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._monotonic())

    def check(self) -> None:
        """Raise ComputationTimeoutError if the deadline has passed."""
        if self.expired:
            raise ComputationTimeoutError(self.operation, self.timeout_seconds or 0)
