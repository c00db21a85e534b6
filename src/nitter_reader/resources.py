"""Construction and ordered shutdown of the long-lived scraping resources."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from nitter_reader.browser.pool import BrowserPool
from nitter_reader.browser.session import BrowserEngine, PlaywrightEngine
from nitter_reader.collectors.timeline import TimelineCollector
from nitter_reader.config import RuntimeConfig
from nitter_reader.errors import is_rate_limit_error
from nitter_reader.extract.nitter import NitterPageExtractor
from nitter_reader.instances.base import Prober
from nitter_reader.instances.registry import InstanceRegistry
from nitter_reader.orchestrator import XDataOrchestrator
from nitter_reader.scheduler.limiter import RateLimiter

logger = logging.getLogger(__name__)

SHUTDOWN_GRACE_SECONDS = 120.0


@dataclass
class AppResources:
    config: RuntimeConfig
    browser_pool: BrowserPool
    registry: InstanceRegistry
    job_limiter: RateLimiter
    request_limiter: RateLimiter
    orchestrator: XDataOrchestrator


def build_app_resources(
    config: RuntimeConfig,
    *,
    engine: BrowserEngine | None = None,
    prober: Prober | None = None,
) -> AppResources:
    """Wire every component without starting anything."""
    browser_pool = BrowserPool(
        engine if engine is not None else PlaywrightEngine(config.browser),
        task_timeout_seconds=config.browser.task_timeout_seconds,
        block_resources=config.browser.block_resources,
    )
    registry = InstanceRegistry.from_config(config.instances, prober=prober)
    job_limiter = RateLimiter(config.job_limiter, name="jobs", track_rate_limits=False)
    request_limiter = RateLimiter(
        config.request_limiter,
        name="requests",
        should_retry=is_rate_limit_error,
    )
    collector = TimelineCollector(
        extractor=NitterPageExtractor(),
        request_limiter=request_limiter,
        navigation_timeout_ms=config.browser.navigation_timeout_ms,
        content_timeout_ms=config.browser.action_timeout_ms,
    )
    orchestrator = XDataOrchestrator(
        registry=registry,
        browser_pool=browser_pool,
        job_limiter=job_limiter,
        collector=collector,
        config=config.scrape,
    )
    return AppResources(
        config=config,
        browser_pool=browser_pool,
        registry=registry,
        job_limiter=job_limiter,
        request_limiter=request_limiter,
        orchestrator=orchestrator,
    )


async def create_app_resources(
    config: RuntimeConfig,
    *,
    engine: BrowserEngine | None = None,
    prober: Prober | None = None,
    health_checks: bool = True,
) -> AppResources:
    """Build, probe instances and start the browser pool."""
    resources = build_app_resources(config, engine=engine, prober=prober)
    await resources.registry.initialize()
    await resources.browser_pool.initialize(config.browser.pool_size)
    if health_checks:
        resources.registry.start_periodic_health_checks(
            config.instances.health_check_interval_seconds
        )
    return resources


async def shutdown_app_resources(
    resources: AppResources, *, grace_seconds: float = SHUTDOWN_GRACE_SECONDS
) -> None:
    """Drain active jobs, then tear down pool, health checks and both limiters."""
    logger.info("shutdown_started grace_s=%s", grace_seconds)
    drained = await resources.job_limiter.wait_for_completion(timeout=grace_seconds)
    if not drained:
        logger.warning("shutdown_jobs_still_running grace_s=%s", grace_seconds)
    await resources.browser_pool.destroy(timeout=grace_seconds)
    await resources.registry.destroy()
    await resources.job_limiter.destroy()
    await resources.request_limiter.destroy()
    logger.info("shutdown_complete")
