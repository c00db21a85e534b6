"""Scheduler contracts and helpers."""

from .base import DEFAULT_SESSION, QueueItem, RateLimiterMetrics, TokenBucketState
from .limiter import RateLimiter
from .periodic import PeriodicTask
from .timing import (
    backoff_delay,
    cooldown_jitter,
    inter_page_delay,
    navigation_backoff,
    parse_rate_limit_headers,
    parse_retry_after,
)

__all__ = [
    "DEFAULT_SESSION",
    "PeriodicTask",
    "QueueItem",
    "RateLimiter",
    "RateLimiterMetrics",
    "TokenBucketState",
    "backoff_delay",
    "cooldown_jitter",
    "inter_page_delay",
    "navigation_backoff",
    "parse_rate_limit_headers",
    "parse_retry_after",
]
