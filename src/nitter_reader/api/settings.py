"""
Environment overrides for the HTTP service.

Loads environment variables (and an optional .env file) on top of the TOML
runtime configuration. Only variables that are actually set take effect.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Optional

from pydantic_settings import BaseSettings

from nitter_reader.config import RuntimeConfig, with_instances


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    # Server
    host: Optional[str] = None
    port: Optional[int] = None
    server_timeout: Optional[float] = None  # seconds, overall scrape deadline

    # Scraping defaults
    posts_limit: Optional[int] = None
    delay_between_pages: Optional[int] = None  # milliseconds
    max_retries: Optional[int] = None

    # Request-level rate limiter
    rate_limiter_requests_per_second: Optional[float] = None
    rate_limiter_burst_capacity: Optional[int] = None
    rate_limiter_max_concurrent: Optional[int] = None
    rate_limiter_max_retries: Optional[int] = None
    rate_limiter_retry_delay: Optional[int] = None  # milliseconds
    rate_limiter_timeout: Optional[int] = None  # milliseconds

    # Browser pool and instances
    browser_pool_size: Optional[int] = None
    nitter_health_check_interval: Optional[int] = None  # milliseconds
    nitter_instances: Optional[str] = None  # comma-separated URLs

    # Output
    out_dir: Optional[str] = None
    debug: Optional[bool] = None

    # Config file location
    nitter_reader_config: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def instance_list(self) -> list[str]:
        """Convert the comma-separated instance list to a list."""
        if not self.nitter_instances:
            return []
        return [url.strip() for url in self.nitter_instances.split(",") if url.strip()]


def apply_settings_overrides(config: RuntimeConfig, settings: Settings) -> RuntimeConfig:
    """Return ``config`` with every explicitly set environment value applied."""
    app = config.app
    if settings.out_dir:
        app = replace(app, out_dir=settings.out_dir)
    if settings.debug is not None:
        app = replace(app, debug=settings.debug)

    server = config.server
    if settings.host:
        server = replace(server, host=settings.host)
    if settings.port is not None:
        server = replace(server, port=settings.port)

    scrape = config.scrape
    if settings.posts_limit is not None:
        scrape = replace(scrape, posts_limit=settings.posts_limit)
    if settings.delay_between_pages is not None:
        scrape = replace(scrape, delay_between_pages_ms=settings.delay_between_pages)
    if settings.max_retries is not None:
        scrape = replace(scrape, max_retries=settings.max_retries)
    if settings.server_timeout is not None:
        scrape = replace(scrape, timeout_seconds=settings.server_timeout)

    limiter = config.request_limiter
    if settings.rate_limiter_requests_per_second is not None:
        limiter = replace(limiter, requests_per_second=settings.rate_limiter_requests_per_second)
    if settings.rate_limiter_burst_capacity is not None:
        limiter = replace(limiter, burst_capacity=settings.rate_limiter_burst_capacity)
    if settings.rate_limiter_max_concurrent is not None:
        limiter = replace(limiter, max_concurrent=settings.rate_limiter_max_concurrent)
    if settings.rate_limiter_max_retries is not None:
        limiter = replace(limiter, max_retries=settings.rate_limiter_max_retries)
    if settings.rate_limiter_retry_delay is not None:
        limiter = replace(limiter, retry_delay_ms=settings.rate_limiter_retry_delay)
    if settings.rate_limiter_timeout is not None:
        limiter = replace(limiter, timeout_seconds=settings.rate_limiter_timeout / 1000)

    browser = config.browser
    if settings.browser_pool_size is not None:
        browser = replace(browser, pool_size=settings.browser_pool_size)

    instances = config.instances
    if settings.nitter_health_check_interval is not None:
        instances = replace(
            instances, health_check_interval_seconds=settings.nitter_health_check_interval / 1000
        )

    updated = replace(
        config,
        app=app,
        server=server,
        scrape=scrape,
        request_limiter=limiter,
        browser=browser,
        instances=instances,
    )
    if settings.instance_list:
        updated = with_instances(updated, tuple(settings.instance_list))
    return updated
