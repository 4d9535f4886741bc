"""Clock abstraction — wall-clock reads for deadline checks.

Deadlines are enforced only by comparing a transaction's observed time
against stored deadlines. There are no timers.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> int:
        """Current unix time in seconds."""
        ...


class SystemClock:
    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock that only moves when told to. Never goes backwards."""

    def __init__(self, start: int = 0) -> None:
        self._now = start

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int) -> None:
        if timestamp < self._now:
            raise ValueError(f"Clock cannot move backwards: {timestamp} < {self._now}")
        self._now = timestamp

    def advance(self, seconds: int) -> int:
        self.set(self._now + seconds)
        return self._now
