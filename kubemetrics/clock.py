"""Clocks used to timestamp and age metrics."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time."""

    @abstractmethod
    def since(self, moment: datetime) -> timedelta:
        """Return the time elapsed since ``moment``."""


class RealClock(Clock):
    """Clock backed by the system time, in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def since(self, moment: datetime) -> timedelta:
        return self.now() - moment


class FakeClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now if now is not None else datetime(1, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def since(self, moment: datetime) -> timedelta:
        return self._now - moment

    def advance(self, delta: timedelta) -> None:
        """Move the clock forward by ``delta``."""
        self._now = self._now + delta