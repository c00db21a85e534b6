"""Deterministic clock and sleep helpers shared by async tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field


@dataclass
class FakeClock:
    """Manually advanced epoch clock usable wherever a ``time.time`` callable is expected."""

    now: float = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("FakeClock cannot move backwards.")
        self.now += seconds
        return self.now


@dataclass
class SleepRecorder:
    """Async sleep replacement that records requested delays.

    When bound to a ``FakeClock`` every recorded sleep also advances it. The
    coroutine still yields once to the loop so other tasks make progress.
    """

    clock: FakeClock | None = None
    calls: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.calls.append(float(seconds))
        if self.clock is not None:
            self.clock.advance(max(0.0, float(seconds)))
        await asyncio.sleep(0)

    @property
    def total(self) -> float:
        return sum(self.calls)
