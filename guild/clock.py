from __future__ import annotations
"""
Period arithmetic.

Time is an external monotonic clock quantized into fixed-length periods. The
engine never runs a timer: it reads the clock whenever an operation needs the
current period.

    period = (now - summoning_time) // period_duration
"""


import time
from typing import Callable, Union

Clock = Callable[[], Union[int, float]]


def system_clock() -> int:
    return int(time.time())


def period_of(now: Union[int, float], summoning_time: int, period_duration: int) -> int:
    if period_duration <= 0:
        raise ValueError("period_duration must be positive")
    elapsed = int(now) - int(summoning_time)
    if elapsed < 0:
        return 0
    return elapsed // period_duration


class ManualClock:
    """Deterministic clock for tests and devnet scenarios."""

    def __init__(self, start: int = 1_700_000_000) -> None:
        self._now = int(start)

    def __call__(self) -> int:
        return self._now

    @property
    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("clock only moves forward")
        self._now += int(seconds)
        return self._now

    def advance_periods(self, periods: int, period_duration: int) -> int:
        return self.advance(int(periods) * int(period_duration))


__all__ = ["Clock", "system_clock", "period_of", "ManualClock"]
