"""
Call pacing and run deadlines.

External quotas (GitHub, LLM providers) are respected by spacing
successive calls rather than by concurrent scheduling. Pacers are
injected so tests can run without delays.
"""

from __future__ import annotations

import time
from typing import Callable, Protocol


class DeadlineExceeded(RuntimeError):
    """The run's deadline passed before the next external call."""


class Pacer(Protocol):
    def wait(self) -> None:
        ...


class NoPacing:
    """Pacer that never waits."""

    def wait(self) -> None:
        return None


class FixedIntervalPacer:
    """Keep at least `interval` seconds between successive calls.

    The first call goes through immediately; later calls sleep only for
    whatever part of the interval has not already elapsed.
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.interval = max(0.0, interval)
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None

    def wait(self) -> None:
        if self._last is not None:
            remaining = self.interval - (self._clock() - self._last)
            if remaining > 0:
                self._sleep(remaining)
        self._last = self._clock()


def make_pacer(interval: float) -> Pacer:
    """Build a pacer for a configured delay (0 disables pacing)."""
    if interval <= 0:
        return NoPacing()
    return FixedIntervalPacer(interval)


class Deadline:
    """Single cancellation signal threaded through a run.

    A Deadline without seconds never expires. Calls already in flight are
    not interrupted; check() is consulted before each new external call.
    """

    def __init__(self, seconds: float | None = None, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    def check(self, action: str = "continue") -> None:
        if self.expired:
            raise DeadlineExceeded(f"Run deadline exceeded; cannot {action}")
