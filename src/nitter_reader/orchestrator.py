"""Per-request scrape driver: instance failover, deadline and partial results."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import math
import time
from typing import Any, Callable
import uuid

from nitter_reader.browser.pool import BrowserPool
from nitter_reader.collectors.base import CollectionLimits, CollectionResult, Collector, StopReason
from nitter_reader.config import ScrapeConfig
from nitter_reader.errors import (
    BrowserPoolError,
    NitterReaderError,
    NoInstanceAvailableError,
    ProfileUnavailableError,
    QueueClearedError,
    is_rate_limit_error,
)
from nitter_reader.instances.registry import InstanceRegistry
from nitter_reader.models import ScrapeOutcome, ScrapeStatus, XDataDocument
from nitter_reader.scheduler.limiter import RateLimiter

logger = logging.getLogger(__name__)

JOB_SESSION = "jobs"
JOB_PRIORITY = 1


@dataclass(frozen=True)
class ScrapeRequest:
    username: str
    tweets_limit: int = 100
    delay_between_pages_ms: int = 6000
    max_retries: int = 3
    session_id: str | None = None


class _ProgressSnapshot:
    """Latest partial document reported by any attempt of one request."""

    def __init__(self) -> None:
        self.document: XDataDocument | None = None
        self.instance: str | None = None

    def recorder(self, instance: str) -> Callable[[XDataDocument], None]:
        def _record(document: XDataDocument) -> None:
            if self.document is None or len(document.tweets) >= len(self.document.tweets):
                self.document = document
                self.instance = instance

        return _record


class XDataOrchestrator:
    """Select an instance, run one collection inside the pool and job limiter, fail over.

    The overall deadline covers every attempt of a request. A timed out
    attempt keeps running in the background; its late result is dropped.
    """

    def __init__(
        self,
        *,
        registry: InstanceRegistry,
        browser_pool: BrowserPool,
        job_limiter: RateLimiter,
        collector: Collector,
        config: ScrapeConfig | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._registry = registry
        self._pool = browser_pool
        self._job_limiter = job_limiter
        self._collector = collector
        self.config = config if config is not None else ScrapeConfig()
        self._clock = clock

    def partial_threshold(self, target: int) -> int:
        return math.ceil(target * self.config.partial_threshold)

    async def get_x_data(self, request: ScrapeRequest) -> ScrapeOutcome:
        session_id = request.session_id or f"scrape-{uuid.uuid4().hex[:12]}"
        target = request.tweets_limit
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.timeout_seconds
        progress = _ProgressSnapshot()
        attempts = 0
        instance: str | None = None
        last_error: BaseException | None = None
        tried: set[str] = set()

        logger.info(
            "scrape_started username=%s target=%s session=%s",
            request.username,
            target,
            session_id,
        )
        while attempts < self.config.max_instance_retries:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return self._timeout_outcome(progress, target, attempts, instance)
            try:
                instance = self._registry.select_instance(session_id, exclude=tried)
            except NoInstanceAvailableError as exc:
                last_error = exc
                break

            attempts += 1
            tried.add(instance)
            started = self._clock()
            job = asyncio.ensure_future(
                self._run_attempt(request, instance, session_id, progress.recorder(instance))
            )
            done, _ = await asyncio.wait({job}, timeout=remaining)
            if not done:
                job.add_done_callback(_discard_late_result)
                logger.warning(
                    "scrape_deadline_expired username=%s instance=%s attempts=%s",
                    request.username,
                    instance,
                    attempts,
                )
                return self._timeout_outcome(progress, target, attempts, instance)

            try:
                result = job.result()
            except ProfileUnavailableError as exc:
                self._registry.mark_instance_success(instance)
                logger.info(
                    "scrape_profile_unavailable username=%s category=%s", request.username, exc.category
                )
                return ScrapeOutcome(
                    status=ScrapeStatus.FAILED,
                    reason=exc.category,
                    error=str(exc),
                    attempts=attempts,
                    instance=instance,
                    requested=target,
                )
            except (BrowserPoolError, QueueClearedError):
                raise
            except Exception as exc:
                # Crashed browsers and other foreign errors count as a failed attempt too.
                last_error = exc
                rate_limited = is_rate_limit_error(exc)
                self._registry.mark_instance_failed(instance, is_rate_limit=rate_limited)
                logger.warning(
                    "scrape_attempt_failed username=%s instance=%s attempt=%s/%s kind=%s error=%s",
                    request.username,
                    instance,
                    attempts,
                    self.config.max_instance_retries,
                    getattr(exc, "kind", type(exc).__name__),
                    exc,
                )
                continue

            elapsed_ms = (self._clock() - started) * 1000
            if self._is_low_yield(result, target):
                self._registry.mark_instance_failed(instance)
                last_error = NitterReaderError(
                    f"Instance {instance} returned no items for '{request.username}'."
                )
                logger.warning(
                    "scrape_low_yield username=%s instance=%s target=%s stop_reason=%s",
                    request.username,
                    instance,
                    target,
                    result.stop_reason.value,
                )
                continue

            if result.rate_limited:
                self._registry.mark_instance_failed(instance, is_rate_limit=True)
            else:
                self._registry.mark_instance_success(instance, elapsed_ms)
            return self._shape(result, target, attempts, instance)

        if loop.time() >= deadline:
            return self._timeout_outcome(progress, target, attempts, instance)

        message = f"All {attempts} instance attempt(s) failed for '{request.username}'"
        if last_error is not None:
            message = f"{message}: {last_error}"
        logger.error("scrape_failed username=%s attempts=%s error=%s", request.username, attempts, last_error)
        return ScrapeOutcome(
            status=ScrapeStatus.FAILED,
            reason="no_instance" if isinstance(last_error, NoInstanceAvailableError) else "attempts_exhausted",
            error=message,
            attempts=attempts,
            instance=instance,
            requested=target,
        )

    async def _run_attempt(
        self,
        request: ScrapeRequest,
        instance: str,
        session_id: str,
        on_progress: Callable[[XDataDocument], None],
    ) -> CollectionResult:
        limits = CollectionLimits(
            target_count=request.tweets_limit,
            delay_between_pages_seconds=request.delay_between_pages_ms / 1000,
            max_retries=request.max_retries,
        )

        async def _in_browser(page: Any) -> CollectionResult:
            return await self._collector.scrape(
                page,
                request.username,
                instance_url=instance,
                limits=limits,
                session_id=session_id,
                on_progress=on_progress,
            )

        async def _job() -> CollectionResult:
            return await self._pool.execute(_in_browser)

        return await self._job_limiter.execute(_job, priority=JOB_PRIORITY, session_id=JOB_SESSION)

    def _is_low_yield(self, result: CollectionResult, target: int) -> bool:
        return result.count == 0 and target >= self.config.low_yield_min_target

    def _shape(
        self, result: CollectionResult, target: int, attempts: int, instance: str
    ) -> ScrapeOutcome:
        status = ScrapeStatus.COMPLETE
        reason = None
        if result.stop_reason is StopReason.NAVIGATION_FAILED and result.count < target:
            status = ScrapeStatus.PARTIAL
            reason = "rate_limited" if result.rate_limited else "navigation_failed"
        logger.info(
            "scrape_finished status=%s instance=%s collected=%s requested=%s stop_reason=%s",
            status.value,
            instance,
            result.count,
            target,
            result.stop_reason.value,
        )
        return ScrapeOutcome(
            status=status,
            document=result.document,
            reason=reason,
            attempts=attempts,
            instance=instance,
            requested=target,
            stop_reason=result.stop_reason.value,
        )

    def _timeout_outcome(
        self,
        progress: _ProgressSnapshot,
        target: int,
        attempts: int,
        instance: str | None,
    ) -> ScrapeOutcome:
        document = progress.document
        collected = len(document.tweets) if document is not None else 0
        threshold = self.partial_threshold(target)
        if document is not None and collected > 0 and collected >= threshold:
            logger.warning(
                "scrape_partial_on_timeout collected=%s requested=%s threshold=%s",
                collected,
                target,
                threshold,
            )
            return ScrapeOutcome(
                status=ScrapeStatus.PARTIAL,
                document=document,
                reason="timeout",
                attempts=attempts,
                instance=progress.instance or instance,
                requested=target,
            )
        return ScrapeOutcome(
            status=ScrapeStatus.FAILED,
            reason="timeout",
            error=(
                f"Scrape timed out after {self.config.timeout_seconds:g}s with {collected} of "
                f"{target} items (needed {threshold} for a partial result)."
            ),
            attempts=attempts,
            instance=instance,
            requested=target,
        )


def _discard_late_result(task: asyncio.Future[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("scrape_late_failure_discarded error=%s", exc)
    else:
        logger.debug("scrape_late_result_discarded")
