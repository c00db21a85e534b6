"""Scheduler time calculation helpers."""

from __future__ import annotations

from email.utils import parsedate_to_datetime
import random
from typing import Mapping

from nitter_reader.errors import LimiterError

MAX_NAVIGATION_BACKOFF_SECONDS = 30.0


def backoff_delay(
    base_seconds: float,
    retries: int,
    *,
    jitter_ratio: float = 0.2,
    rng: random.Random | None = None,
) -> float:
    """Return ``base * 2^(retries-1)`` plus up to ``jitter_ratio`` of extra wait."""
    if base_seconds < 0:
        raise LimiterError("base_seconds must be >= 0.")
    if retries < 1:
        raise LimiterError("retries must be >= 1.")
    if jitter_ratio < 0 or jitter_ratio > 1:
        raise LimiterError("jitter_ratio must be between 0 and 1.")

    delay = base_seconds * (2 ** (retries - 1))
    if jitter_ratio == 0 or delay == 0:
        return delay
    chooser = rng if rng is not None else random
    return delay + chooser.uniform(0, delay * jitter_ratio)


def navigation_backoff(
    base_seconds: float,
    attempt: int,
    *,
    cap_seconds: float = MAX_NAVIGATION_BACKOFF_SECONDS,
    rng: random.Random | None = None,
) -> float:
    """Backoff for page navigation retries: ``base * 2^attempt * U(0.9, 1.3)``, capped."""
    if attempt < 0:
        raise LimiterError("attempt must be >= 0.")
    chooser = rng if rng is not None else random
    delay = base_seconds * (2**attempt) * chooser.uniform(0.9, 1.3)
    return min(delay, cap_seconds)


def inter_page_delay(
    base_seconds: float,
    *,
    low: float = 0.8,
    high: float = 1.5,
    rng: random.Random | None = None,
) -> float:
    """Randomised delay between two page loads, within ``[low, high] * base``."""
    if base_seconds <= 0:
        return 0.0
    chooser = rng if rng is not None else random
    return chooser.uniform(base_seconds * low, base_seconds * high)


def cooldown_jitter(max_seconds: float, *, rng: random.Random | None = None) -> float:
    if max_seconds <= 0:
        return 0.0
    chooser = rng if rng is not None else random
    return chooser.uniform(0, max_seconds)


def parse_retry_after(raw: str | None, *, now: float) -> float | None:
    """Parse a Retry-After value (delta seconds or HTTP date) into seconds from now."""
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        try:
            moment = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        return max(0.0, moment.timestamp() - now)
    return max(0.0, seconds)


def parse_rate_limit_headers(
    headers: Mapping[str, str], *, now: float
) -> tuple[int | None, float | None]:
    """Return ``(remaining, reset_at)`` from x-ratelimit-* / retry-after headers.

    ``reset_at`` is an absolute epoch timestamp. Reset values that look like a
    delta (smaller than a year in seconds) are treated as relative to ``now``.
    """
    lowered = {str(key).lower(): str(value) for key, value in headers.items()}

    remaining: int | None = None
    raw_remaining = lowered.get("x-ratelimit-remaining")
    if raw_remaining is not None:
        try:
            remaining = max(0, int(float(raw_remaining.strip())))
        except ValueError:
            remaining = None

    reset_at: float | None = None
    raw_reset = lowered.get("x-ratelimit-reset")
    if raw_reset is not None:
        try:
            reset_value = float(raw_reset.strip())
        except ValueError:
            reset_value = None
        if reset_value is not None:
            reset_at = reset_value if reset_value > 365 * 24 * 3600 else now + reset_value

    if reset_at is None:
        retry_after = parse_retry_after(lowered.get("retry-after"), now=now)
        if retry_after is not None:
            reset_at = now + retry_after

    return remaining, reset_at
