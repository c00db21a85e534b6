"""Test-only utilities for deterministic limiter and collector assertions."""

from .time_control import FakeClock, SleepRecorder

__all__ = [
    "FakeClock",
    "SleepRecorder",
]
