"""Nitter profile timeline collector: navigation, pagination and stop decisions."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import random
import time
from typing import Any, Awaitable, Callable, Mapping, Protocol
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from nitter_reader.browser.policy import detect_blocked_page, observe_responses
from nitter_reader.errors import (
    CollectError,
    NavigationError,
    PageParseError,
    PageTimeoutError,
    ProfileUnavailableError,
    RateLimitError,
    RequestTimeoutError,
)
from nitter_reader.extract.base import PageExtractor
from nitter_reader.extract.nitter import NitterPageExtractor, extract_cursor
from nitter_reader.models import PageInfo
from nitter_reader.scheduler.base import DEFAULT_SESSION
from nitter_reader.scheduler.limiter import RateLimiter
from nitter_reader.scheduler.timing import inter_page_delay, navigation_backoff, parse_retry_after

from .base import (
    CollectionLimits,
    CollectionResult,
    CollectionState,
    ProgressFn,
    StopReason,
    add_new_items,
)

logger = logging.getLogger(__name__)

TIMELINE_ITEM_SELECTOR = ".timeline .timeline-item"
INITIAL_CONTENT_SELECTOR = ".timeline .timeline-item, .profile-card-username"
POST_LOAD_DELAY_RANGE = (1.0, 2.5)

SleepFn = Callable[[float], Awaitable[None]]


class TimelinePage(Protocol):
    @property
    def url(self) -> str:
        """Current page URL."""

    async def goto(self, url: str, **kwargs: Any) -> Any:
        """Navigate to a URL."""

    async def wait_for_selector(self, selector: str, **kwargs: Any) -> Any:
        """Wait for selector to appear."""

    async def content(self) -> str:
        """Return page HTML content."""

    async def title(self) -> str:
        """Current page title."""

    def on(self, event: str, handler: Callable[[Any], Any]) -> Any:
        """Subscribe to a page event."""

    def remove_listener(self, event: str, handler: Callable[[Any], Any]) -> Any:
        """Unsubscribe from a page event."""


@dataclass
class _ResponseTracker:
    status: int | None = None
    headers: dict[str, str] = field(default_factory=dict)

    def __call__(self, status: int, headers: Mapping[str, str]) -> None:
        self.status = status
        self.headers = dict(headers)

    def reset(self) -> None:
        self.status = None
        self.headers = {}


@dataclass(frozen=True)
class StopDecision:
    reason: StopReason
    detail: str


class TimelineCollector:
    """Page through one profile's timeline on a Nitter instance.

    Page loads go through the optional request limiter, scoped by session id,
    so upstream 429s cool that session down before the load is retried.
    """

    def __init__(
        self,
        *,
        extractor: PageExtractor | None = None,
        request_limiter: RateLimiter | None = None,
        navigation_timeout_ms: int = 30_000,
        content_timeout_ms: int = 15_000,
        sleep: SleepFn = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._extractor = extractor if extractor is not None else NitterPageExtractor()
        self._limiter = request_limiter
        self._navigation_timeout_ms = navigation_timeout_ms
        self._content_timeout_ms = content_timeout_ms
        self._sleep = sleep
        self._rng = rng if rng is not None else random.Random()

    async def scrape(
        self,
        page: TimelinePage,
        handle: str,
        *,
        instance_url: str,
        limits: CollectionLimits,
        session_id: str | None = None,
        on_progress: ProgressFn | None = None,
    ) -> CollectionResult:
        if limits.target_count <= 0:
            raise CollectError("Collection target_count must be positive.")

        session = session_id or DEFAULT_SESSION
        tracker = _ResponseTracker()
        detach = observe_responses(page, tracker)
        try:
            start_url = f"{instance_url.rstrip('/')}/{handle}"
            await self._load_with_retries(
                page, start_url, tracker, limits, session, initial=True
            )
            return await self._collect_loop(
                page,
                handle,
                tracker,
                limits=limits,
                session=session,
                instance_url=instance_url,
                on_progress=on_progress,
            )
        finally:
            detach()

    async def _collect_loop(
        self,
        page: TimelinePage,
        handle: str,
        tracker: _ResponseTracker,
        *,
        limits: CollectionLimits,
        session: str,
        instance_url: str,
        on_progress: ProgressFn | None,
    ) -> CollectionResult:
        state = CollectionState()
        rate_limited = False

        while True:
            html = await _read_content(page)
            data = self._extractor.parse(html, _current_url(page, instance_url), owner=state.profile)
            state.pages += 1
            if state.pages == 1 and not data.has_content:
                raise PageParseError(
                    f"Page for '{handle}' on {instance_url} has no timeline or profile markup."
                )
            if state.profile is None and data.profile is not None:
                state.profile = data.profile
            if state.stats is None and data.stats is not None:
                state.stats = data.stats

            added = add_new_items(state, data.items)
            logger.debug(
                "timeline_page handle=%s page=%s parsed=%s added=%s total=%s",
                handle,
                state.pages,
                len(data.items),
                added,
                len(state.items),
            )
            if on_progress is not None:
                on_progress(state.snapshot(limits.target_count))

            decision = decide_stop(state, data.page_info, handle, limits)
            if decision is not None:
                break

            href = data.page_info.link_href or ""
            cursor = extract_cursor(href)
            if cursor is not None:
                state.seen_cursors.add(cursor)
            next_url = urljoin(_current_url(page, instance_url), href)

            await self._sleep(
                inter_page_delay(limits.delay_between_pages_seconds, rng=self._rng)
            )
            try:
                await self._load_with_retries(
                    page, next_url, tracker, limits, session, initial=False
                )
            except CollectError as exc:
                decision = StopDecision(StopReason.NAVIGATION_FAILED, str(exc))
                break
            except RateLimitError as exc:
                rate_limited = True
                decision = StopDecision(StopReason.NAVIGATION_FAILED, f"rate limited: {exc}")
                break

        logger.info(
            "timeline_stopped handle=%s reason=%s detail=%s pages=%s items=%s",
            handle,
            decision.reason.value,
            decision.detail,
            state.pages,
            len(state.items),
        )
        return CollectionResult(
            document=state.snapshot(limits.target_count),
            stop_reason=decision.reason,
            pages=state.pages,
            detail=decision.detail,
            rate_limited=rate_limited,
        )

    async def _load_with_retries(
        self,
        page: TimelinePage,
        url: str,
        tracker: _ResponseTracker,
        limits: CollectionLimits,
        session: str,
        *,
        initial: bool,
    ) -> None:
        attempts = max(1, limits.max_retries)
        last_error: CollectError | None = None
        for attempt in range(attempts):
            if attempt > 0:
                delay = navigation_backoff(
                    limits.delay_between_pages_seconds, attempt, rng=self._rng
                )
                logger.info(
                    "timeline_navigation_retry url=%s attempt=%s/%s delay_s=%.2f",
                    url,
                    attempt + 1,
                    attempts,
                    delay,
                )
                await self._sleep(delay)
            try:
                await self._load(page, url, tracker, session, initial=initial)
                return
            except ProfileUnavailableError:
                raise
            except CollectError as exc:
                last_error = exc
                logger.warning(
                    "timeline_navigation_failed url=%s attempt=%s/%s kind=%s error=%s",
                    url,
                    attempt + 1,
                    attempts,
                    exc.kind,
                    exc,
                )
        if last_error is None:
            raise NavigationError(f"Could not load '{url}'.")
        raise last_error

    async def _load(
        self,
        page: TimelinePage,
        url: str,
        tracker: _ResponseTracker,
        session: str,
        *,
        initial: bool,
    ) -> None:
        async def _run() -> None:
            await self._navigate(page, url, tracker, session, initial=initial)

        if self._limiter is None:
            await _run()
        else:
            try:
                await self._limiter.execute(_run, priority=1, session_id=session)
            except RequestTimeoutError as exc:
                raise PageTimeoutError(f"Loading '{url}' exceeded the request timeout.") from exc
        low, high = POST_LOAD_DELAY_RANGE
        await self._sleep(self._rng.uniform(low, high))

    async def _navigate(
        self,
        page: TimelinePage,
        url: str,
        tracker: _ResponseTracker,
        session: str,
        *,
        initial: bool,
    ) -> None:
        tracker.reset()
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self._navigation_timeout_ms)
        except Exception as exc:
            raise _classify(exc, f"Could not navigate to '{url}'") from exc

        if tracker.headers and self._limiter is not None:
            self._limiter.update_rate_limit(session, tracker.headers)
        if tracker.status == 429:
            raise RateLimitError(
                f"Instance rate limited loading '{url}'",
                retry_after=_retry_after(tracker.headers),
            )

        selector = INITIAL_CONTENT_SELECTOR if initial else TIMELINE_ITEM_SELECTOR
        try:
            await page.wait_for_selector(selector, timeout=self._content_timeout_ms)
        except Exception as exc:
            await self._raise_for_missing_content(page, url, exc, initial=initial)

    async def _raise_for_missing_content(
        self, page: TimelinePage, url: str, exc: Exception, *, initial: bool
    ) -> None:
        html = await _read_content(page)
        try:
            title = str(await page.title())
        except Exception:
            title = ""
        category = detect_blocked_page(url, title, _visible_text(html))
        if category == "rate_limited":
            raise RateLimitError(f"Instance reported rate limiting for '{url}'") from exc
        if category is not None:
            raise ProfileUnavailableError(
                f"Profile at '{url}' is unavailable ({category}).", category=category
            ) from exc
        if initial and _visible_text(html).strip():
            return
        raise _classify(exc, f"Timeline markup did not render for '{url}'") from exc


def decide_stop(
    state: CollectionState,
    page_info: PageInfo,
    handle: str,
    limits: CollectionLimits,
) -> StopDecision | None:
    """Return the first stop condition that applies, in precedence order."""
    if len(state.items) >= limits.target_count:
        return StopDecision(StopReason.LIMIT_REACHED, f"collected {len(state.items)}")
    if state.consecutive_empty_pages >= limits.max_empty_pages:
        return StopDecision(
            StopReason.NO_NEW_CONTENT,
            f"{state.consecutive_empty_pages} consecutive pages without new items",
        )
    if not page_info.has_show_more:
        return StopDecision(StopReason.NO_MORE_PAGES, "no-show-more")
    href = page_info.link_href
    if not href:
        return StopDecision(StopReason.NO_MORE_PAGES, "no-link-href")
    if href.lower() in (f"/{handle}".lower(), handle.lower()):
        return StopDecision(StopReason.CURSOR_LOOP, "link-to-profile")
    cursor = extract_cursor(href)
    if cursor is None:
        return StopDecision(StopReason.NO_MORE_PAGES, "no-cursor-link")
    if cursor in state.seen_cursors:
        return StopDecision(StopReason.CURSOR_LOOP, "cursor-seen")
    return None


def _classify(exc: Exception, message: str) -> CollectError:
    if "timeout" in type(exc).__name__.lower() or "timeout" in str(exc).lower():
        return PageTimeoutError(f"{message}: {exc}")
    return NavigationError(f"{message}: {exc}")


def _retry_after(headers: Mapping[str, str]) -> float | None:
    lowered = {key.lower(): value for key, value in headers.items()}
    return parse_retry_after(lowered.get("retry-after"), now=time.time())


def _current_url(page: TimelinePage, fallback: str) -> str:
    try:
        return str(page.url) or fallback
    except Exception:
        return fallback


async def _read_content(page: TimelinePage) -> str:
    try:
        return str(await page.content())
    except Exception as exc:
        raise NavigationError(f"Could not read page content during collection: {exc}") from exc


def _visible_text(html: str) -> str:
    soup = BeautifulSoup(html or "", "html.parser")
    body = soup.body or soup
    return body.get_text(" ", strip=True)
