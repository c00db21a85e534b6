"""Rate limiter state contracts."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

DEFAULT_SESSION = "default"

TaskFn = Callable[[], Awaitable[Any]]


@dataclass
class TokenBucketState:
    """Per-session admission state owned by one limiter."""

    tokens: float
    requests_per_second: float
    last_refill: float
    remaining_quota: int | None = None
    quota_reset_at: float | None = None
    is_limited: bool = False
    cooldown_until: float = 0.0
    active: int = 0
    last_used: float = 0.0


@dataclass
class QueueItem:
    fn: TaskFn
    future: asyncio.Future[Any]
    session_id: str
    priority: int
    sequence: int
    enqueued_at: float
    retries: int = 0
    last_error: BaseException | None = None

    @property
    def sort_key(self) -> tuple[int, int]:
        # Higher priority first, then FIFO by sequence within a tier.
        return (-self.priority, self.sequence)


@dataclass
class RateLimiterMetrics:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    retried_requests: int = 0
    rate_limited_requests: int = 0
    average_latency_ms: float = 0.0
    queue_depth: int = 0
    active_requests: int = 0
    sessions: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "retried_requests": self.retried_requests,
            "rate_limited_requests": self.rate_limited_requests,
            "average_latency_ms": round(self.average_latency_ms, 2),
            "queue_depth": self.queue_depth,
            "active_requests": self.active_requests,
            "sessions": self.sessions,
        }
