"""Error taxonomy for stable module boundaries."""

from __future__ import annotations


class NitterReaderError(Exception):
    """Base exception for nitter-reader."""


class ConfigError(NitterReaderError):
    """Raised when configuration is invalid or missing."""


class BrowserError(NitterReaderError):
    """Raised for browser engine/context management failures."""


class BrowserPoolError(BrowserError):
    """Raised when the browser pool is used before initialize() or after destroy()."""


class PoolTaskTimeoutError(BrowserError):
    """Raised when a pooled task exceeds its execution timeout."""


class LimiterError(NitterReaderError):
    """Raised for rate limiter admission and lifecycle failures."""


class QueueClearedError(LimiterError):
    """Raised for queued work dropped by clear_queue() or destroy()."""


class RequestTimeoutError(LimiterError):
    """Raised when an admitted request exceeds the per-request timeout."""


class RateLimitError(NitterReaderError):
    """Raised when the upstream answers with a 429-class response."""

    def __init__(
        self,
        message: str = "Upstream rate limit hit",
        *,
        retry_after: float | None = None,
        status: int = 429,
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.status = status


class InstanceError(NitterReaderError):
    """Raised for instance registry failures."""


class NoInstanceAvailableError(InstanceError):
    """Raised when every configured instance is down or cooling down."""


class CollectError(NitterReaderError):
    """Raised for collection lifecycle failures."""

    kind = "collect"


class NavigationError(CollectError):
    """Raised when a page cannot be reached (network class)."""

    kind = "network"


class PageTimeoutError(CollectError):
    """Raised when a page does not render expected markup in time."""

    kind = "timeout"


class PageParseError(CollectError):
    """Raised when the rendered page shell has no parseable content."""

    kind = "parse"


class ProfileUnavailableError(CollectError):
    """Raised when the instance reports the profile as missing, suspended or protected."""

    kind = "unavailable"

    def __init__(self, message: str, *, category: str) -> None:
        super().__init__(message)
        self.category = category


class ScrapeError(NitterReaderError):
    """Raised when every instance attempt for a scrape request failed."""

    def __init__(self, message: str, *, attempts: int = 0, instance: str | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.instance = instance


class StoreError(NitterReaderError):
    """Raised when a scraped document cannot be persisted."""


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return true for explicit rate-limit errors or anything carrying HTTP 429."""
    if isinstance(exc, RateLimitError):
        return True
    status = getattr(exc, "status", None)
    if status is None:
        status = getattr(exc, "status_code", None)
    return status == 429
