"""Rate limiter admission, retry and cooldown behavior."""

from __future__ import annotations

import asyncio
import random

import pytest

from nitter_reader.config import LimiterConfig
from nitter_reader.errors import (
    LimiterError,
    NavigationError,
    QueueClearedError,
    RateLimitError,
    RequestTimeoutError,
    is_rate_limit_error,
)
from nitter_reader.scheduler.limiter import RateLimiter
from nitter_reader.testing import FakeClock, SleepRecorder


def _config(**overrides) -> LimiterConfig:
    values = dict(
        requests_per_second=100.0,
        burst_capacity=50,
        max_concurrent=1,
        max_retries=3,
        retry_delay_ms=100,
        timeout_seconds=5.0,
        rate_limit_cooldown_seconds=0.05,
        rate_limit_jitter_seconds=0.0,
    )
    values.update(overrides)
    return LimiterConfig(**values)


def _limiter(config: LimiterConfig, **kwargs) -> RateLimiter:
    kwargs.setdefault("admission_interval", 0.01)
    kwargs.setdefault("refill_interval", 0.05)
    kwargs.setdefault("rng", random.Random(0))
    return RateLimiter(config, **kwargs)


class ConcurrencyProbe:
    def __init__(self) -> None:
        self.active = 0
        self.peak = 0

    async def run(self, value: int) -> int:
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.005)
        self.active -= 1
        return value


@pytest.mark.asyncio
async def test_single_session_burst_never_exceeds_max_concurrent() -> None:
    limiter = _limiter(_config(max_concurrent=1))
    probe = ConcurrencyProbe()
    try:
        results = await asyncio.gather(
            *(limiter.execute(lambda i=i: probe.run(i), session_id="scrape-a") for i in range(12))
        )
    finally:
        await limiter.destroy()

    assert results == list(range(12))
    assert probe.peak == 1
    metrics = limiter.get_metrics()
    assert metrics.total_requests == 12
    assert metrics.successful_requests == 12
    assert metrics.failed_requests == 0


@pytest.mark.asyncio
async def test_sessions_are_isolated_from_each_other() -> None:
    limiter = _limiter(_config(max_concurrent=1))
    probe = ConcurrencyProbe()
    try:
        await asyncio.gather(
            *(
                limiter.execute(lambda i=i: probe.run(i), session_id=f"session-{i % 3}")
                for i in range(9)
            )
        )
    finally:
        await limiter.destroy()

    assert 1 < probe.peak <= 3
    assert limiter.get_metrics().sessions == 3


@pytest.mark.asyncio
async def test_generic_failures_back_off_and_reject_after_max_retries() -> None:
    sleeps = SleepRecorder()
    limiter = _limiter(_config(max_retries=3, retry_delay_ms=1000), sleep=sleeps)
    calls = 0

    async def _always_fail() -> None:
        nonlocal calls
        calls += 1
        raise NavigationError(f"boom {calls}")

    try:
        with pytest.raises(NavigationError, match="boom 4"):
            await limiter.execute(_always_fail)
    finally:
        await limiter.destroy()

    assert calls == 4
    assert len(sleeps.calls) == 3
    assert sleeps.calls == sorted(sleeps.calls)
    assert 1.0 <= sleeps.calls[0] <= 1.2
    assert 2.0 <= sleeps.calls[1] <= 2.4
    assert 4.0 <= sleeps.calls[2] <= 4.8
    metrics = limiter.get_metrics()
    assert metrics.retried_requests == 3
    assert metrics.failed_requests == 1


@pytest.mark.asyncio
async def test_should_retry_filter_rejects_non_rate_limit_errors_immediately() -> None:
    sleeps = SleepRecorder()
    limiter = _limiter(_config(), sleep=sleeps, should_retry=is_rate_limit_error)
    calls = 0

    async def _fail() -> None:
        nonlocal calls
        calls += 1
        raise NavigationError("page did not load")

    try:
        with pytest.raises(NavigationError):
            await limiter.execute(_fail)
    finally:
        await limiter.destroy()

    assert calls == 1
    assert sleeps.calls == []


@pytest.mark.asyncio
async def test_rate_limited_twice_then_success_is_retried_after_cooldown() -> None:
    sleeps = SleepRecorder()
    limiter = _limiter(_config(max_retries=3), sleep=sleeps)
    calls = 0

    async def _flaky() -> str:
        nonlocal calls
        calls += 1
        if calls <= 2:
            raise RateLimitError("429 from upstream", retry_after=0.02)
        return "ok"

    try:
        result = await limiter.execute(_flaky, session_id="scrape-429")
    finally:
        await limiter.destroy()

    assert result == "ok"
    assert calls == 3
    assert sleeps.calls == []
    metrics = limiter.get_metrics()
    assert metrics.retried_requests == 2
    assert metrics.rate_limited_requests == 2
    assert metrics.successful_requests == 1
    assert metrics.failed_requests == 0


@pytest.mark.asyncio
async def test_rate_limit_puts_session_into_cooldown() -> None:
    limiter = _limiter(_config(max_retries=0, rate_limit_cooldown_seconds=30.0))

    async def _limited() -> None:
        raise RateLimitError("slow down")

    try:
        with pytest.raises(RateLimitError):
            await limiter.execute(_limited, session_id="scrape-cool")
        state = limiter.get_session_state("scrape-cool")
        assert state is not None
        assert state.is_limited is True
        assert state.cooldown_until > 0

        # Another session keeps flowing while the first cools down.
        async def _ok() -> str:
            return "fine"

        assert await limiter.execute(_ok, session_id="scrape-other") == "fine"
    finally:
        await limiter.destroy()


@pytest.mark.asyncio
async def test_untracked_rate_limits_are_rejected_without_cooldown() -> None:
    limiter = _limiter(_config(max_retries=0, rate_limit_cooldown_seconds=30.0), track_rate_limits=False)

    async def _limited() -> None:
        raise RateLimitError("slow down")

    async def _ok() -> str:
        return "fine"

    try:
        with pytest.raises(RateLimitError):
            await limiter.execute(_limited, session_id="jobs")
        state = limiter.get_session_state("jobs")
        assert state is not None
        assert state.is_limited is False
        assert limiter.get_metrics().rate_limited_requests == 0
        assert await limiter.execute(_ok, session_id="jobs") == "fine"
    finally:
        await limiter.destroy()


@pytest.mark.asyncio
async def test_timeout_rejects_with_request_timeout_error() -> None:
    limiter = _limiter(_config(max_retries=0, timeout_seconds=0.02))

    async def _slow() -> None:
        await asyncio.sleep(1)

    try:
        with pytest.raises(RequestTimeoutError, match="Request timeout"):
            await limiter.execute(_slow)
    finally:
        await limiter.destroy()


@pytest.mark.asyncio
async def test_higher_priority_is_admitted_first() -> None:
    limiter = _limiter(_config(max_concurrent=1))
    order: list[str] = []
    gate = asyncio.Event()

    async def _blocker() -> None:
        await gate.wait()

    async def _record(label: str) -> None:
        order.append(label)

    try:
        blocker = asyncio.ensure_future(limiter.execute(_blocker))
        await asyncio.sleep(0.02)
        low = asyncio.ensure_future(limiter.execute(lambda: _record("low"), priority=0))
        high = asyncio.ensure_future(limiter.execute(lambda: _record("high"), priority=5))
        await asyncio.sleep(0)
        gate.set()
        await asyncio.gather(blocker, low, high)
    finally:
        await limiter.destroy()

    assert order == ["high", "low"]


@pytest.mark.asyncio
async def test_clear_queue_rejects_pending_items() -> None:
    limiter = _limiter(_config(max_concurrent=1))
    gate = asyncio.Event()

    async def _blocker() -> None:
        await gate.wait()

    try:
        running = asyncio.ensure_future(limiter.execute(_blocker))
        await asyncio.sleep(0.02)
        pending = [asyncio.ensure_future(limiter.execute(_blocker)) for _ in range(3)]
        await asyncio.sleep(0)

        assert limiter.clear_queue("maintenance") == 3
        for future in pending:
            with pytest.raises(QueueClearedError, match="maintenance"):
                await future
        gate.set()
        await running
    finally:
        await limiter.destroy()


@pytest.mark.asyncio
async def test_wait_for_completion_reports_timeout_and_drain() -> None:
    limiter = _limiter(_config())
    gate = asyncio.Event()

    async def _blocker() -> None:
        await gate.wait()

    try:
        job = asyncio.ensure_future(limiter.execute(_blocker))
        await asyncio.sleep(0.02)
        assert await limiter.wait_for_completion(timeout=0.05) is False
        gate.set()
        assert await limiter.wait_for_completion(timeout=1.0) is True
        await job
    finally:
        await limiter.destroy()


@pytest.mark.asyncio
async def test_destroyed_limiter_refuses_new_work() -> None:
    limiter = _limiter(_config())
    await limiter.destroy()

    async def _noop() -> None:
        return None

    with pytest.raises(LimiterError, match="destroyed"):
        await limiter.execute(_noop)


@pytest.mark.asyncio
async def test_update_rate_limit_records_quota_headers() -> None:
    limiter = _limiter(_config())
    try:
        limiter.update_rate_limit("scrape-q", {"x-ratelimit-remaining": "2", "x-ratelimit-reset": "30"})
        state = limiter.get_session_state("scrape-q")
    finally:
        await limiter.destroy()

    assert state is not None
    assert state.remaining_quota == 2
    assert state.quota_reset_at is not None


class ScriptedRandom:
    """Returns queued values from ``random()`` and counts the draws."""

    def __init__(self, values: list[float]) -> None:
        self.values = list(values)
        self.draws = 0

    def random(self) -> float:
        self.draws += 1
        return self.values.pop(0) if self.values else 0.0

    def uniform(self, low: float, high: float) -> float:
        return low


@pytest.mark.asyncio
async def test_burst_capacity_caps_admissions_until_refill() -> None:
    clock = FakeClock()
    limiter = _limiter(
        _config(requests_per_second=1.0, burst_capacity=2, max_concurrent=10),
        clock=clock,
        refill_interval=0.01,
    )
    done: list[int] = []

    async def _record(value: int) -> int:
        done.append(value)
        return value

    try:
        jobs = [
            asyncio.ensure_future(limiter.execute(lambda i=i: _record(i), session_id="scrape-b"))
            for i in range(5)
        ]
        await asyncio.sleep(0.05)
        assert done == [0, 1]
        assert limiter.get_metrics().queue_depth == 3
        assert limiter.get_session_state("scrape-b").tokens == 0

        clock.advance(10.0)
        await asyncio.sleep(0.05)
        assert done == [0, 1, 2, 3]

        clock.advance(1.0)
        assert await asyncio.gather(*jobs) == [0, 1, 2, 3, 4]
    finally:
        await limiter.destroy()


@pytest.mark.asyncio
async def test_idle_refill_never_exceeds_burst_capacity() -> None:
    clock = FakeClock()
    limiter = _limiter(
        _config(requests_per_second=10.0, burst_capacity=3),
        clock=clock,
        refill_interval=0.01,
    )

    async def _noop() -> None:
        return None

    try:
        await limiter.execute(_noop, session_id="scrape-r")
        assert limiter.get_session_state("scrape-r").tokens == 2

        clock.advance(100.0)
        await asyncio.sleep(0.05)
        state = limiter.get_session_state("scrape-r")
    finally:
        await limiter.destroy()

    assert state is not None
    assert state.tokens == 3.0


@pytest.mark.asyncio
async def test_exhausted_quota_throttles_admission_without_blocking_it() -> None:
    clock = FakeClock()
    rng = ScriptedRandom([0.9, 0.9, 0.1])
    limiter = _limiter(_config(), clock=clock, rng=rng)

    async def _noop() -> str:
        return "ok"

    try:
        limiter.update_rate_limit("scrape-q", {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "30"})
        result = await asyncio.wait_for(limiter.execute(_noop, session_id="scrape-q"), timeout=2.0)
    finally:
        await limiter.destroy()

    assert result == "ok"
    assert rng.draws == 3


@pytest.mark.asyncio
async def test_quota_throttle_lifts_once_reset_time_passes() -> None:
    clock = FakeClock()
    rng = ScriptedRandom([0.99] * 1000)
    limiter = _limiter(_config(), clock=clock, rng=rng)

    async def _noop() -> str:
        return "ok"

    try:
        limiter.update_rate_limit("scrape-q", {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "30"})
        job = asyncio.ensure_future(limiter.execute(_noop, session_id="scrape-q"))
        await asyncio.sleep(0.05)
        assert not job.done()

        clock.advance(31.0)
        assert await asyncio.wait_for(job, timeout=2.0) == "ok"
        state = limiter.get_session_state("scrape-q")
    finally:
        await limiter.destroy()

    assert state.remaining_quota is None


@pytest.mark.asyncio
async def test_average_latency_is_an_exponential_moving_average() -> None:
    clock = FakeClock()
    limiter = _limiter(_config(), clock=clock)

    def _taking(seconds: float):
        async def _run() -> None:
            clock.advance(seconds)

        return _run

    try:
        await limiter.execute(_taking(0.1))
        assert limiter.get_metrics().average_latency_ms == pytest.approx(100.0)
        await limiter.execute(_taking(0.2))
        metrics = limiter.get_metrics()
    finally:
        await limiter.destroy()

    assert metrics.average_latency_ms == pytest.approx(120.0)
