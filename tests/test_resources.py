"""Wiring, startup and ordered shutdown of the shared scraping resources."""

from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from nitter_reader.config import default_config
from nitter_reader.errors import RateLimitError
from nitter_reader.instances.base import InstanceStatus, ProbeResult
from nitter_reader.resources import build_app_resources, create_app_resources, shutdown_app_resources
from tests.fakes import FakeEngine, FakeProber


def _config(pool_size: int = 2):
    config = default_config()
    return replace(config, browser=replace(config.browser, pool_size=pool_size))


def test_build_wires_components_without_starting_them() -> None:
    engine = FakeEngine()
    resources = build_app_resources(_config(), engine=engine, prober=FakeProber())

    assert engine.started is False
    assert resources.browser_pool.get_status().initialized is False
    assert resources.job_limiter.name == "jobs"
    assert resources.request_limiter.name == "requests"
    assert resources.orchestrator.config == resources.config.scrape
    assert resources.registry.urls == resources.config.instances.urls


@pytest.mark.asyncio
async def test_create_probes_instances_and_starts_pool() -> None:
    one, two = default_config().instances.urls
    prober = FakeProber({two: ProbeResult(ok=False, error="timeout")})
    resources = await create_app_resources(_config(3), engine=FakeEngine(), prober=prober, health_checks=False)
    try:
        assert sorted(prober.calls) == sorted([one, two])
        assert resources.registry.get_instance(one).status is InstanceStatus.HEALTHY
        assert resources.registry.get_instance(two).status is InstanceStatus.UNHEALTHY
        assert resources.browser_pool.get_status().size == 3
    finally:
        await shutdown_app_resources(resources, grace_seconds=1.0)


@pytest.mark.asyncio
async def test_request_limiter_only_retries_rate_limits() -> None:
    resources = build_app_resources(_config(), engine=FakeEngine(), prober=FakeProber())
    limiter = resources.request_limiter
    calls = 0

    async def _boom() -> None:
        nonlocal calls
        calls += 1
        raise ValueError("selector missing")

    try:
        with pytest.raises(ValueError):
            await limiter.execute(_boom, session_id="scrape-abc")
        assert calls == 1
        assert limiter.get_metrics().retried_requests == 0
    finally:
        await limiter.destroy()
        await resources.job_limiter.destroy()


@pytest.mark.asyncio
async def test_job_limiter_does_not_cool_down_on_rate_limits() -> None:
    resources = build_app_resources(_config(), engine=FakeEngine(), prober=FakeProber())
    limiter = resources.job_limiter

    async def _limited() -> None:
        raise RateLimitError("429")

    try:
        with pytest.raises(RateLimitError):
            await limiter.execute(_limited, session_id="jobs")
        assert limiter.get_session_state("jobs").is_limited is False
    finally:
        await limiter.destroy()
        await resources.request_limiter.destroy()


@pytest.mark.asyncio
async def test_shutdown_waits_for_running_jobs_before_closing_pool() -> None:
    engine = FakeEngine()
    prober = FakeProber()
    resources = await create_app_resources(_config(), engine=engine, prober=prober, health_checks=True)
    finished: list[bool] = []

    async def _page_task(page) -> None:
        await asyncio.sleep(0.05)
        finished.append(engine.closed)

    async def _job() -> None:
        await resources.browser_pool.execute(_page_task)

    job = asyncio.ensure_future(resources.job_limiter.execute(_job, session_id="jobs"))
    await asyncio.sleep(0.01)
    await shutdown_app_resources(resources, grace_seconds=2.0)
    await job

    assert finished == [False]
    assert engine.closed is True
    assert prober.closed is True
    assert resources.job_limiter.destroyed is True
    assert resources.request_limiter.destroyed is True
