"""Priority-queued, per-session token bucket rate limiter for async work."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from nitter_reader.config import LimiterConfig
from nitter_reader.errors import (
    LimiterError,
    QueueClearedError,
    RateLimitError,
    RequestTimeoutError,
    is_rate_limit_error,
)

from .base import DEFAULT_SESSION, QueueItem, RateLimiterMetrics, TaskFn, TokenBucketState
from .periodic import PeriodicTask
from .timing import backoff_delay, cooldown_jitter, parse_rate_limit_headers

logger = logging.getLogger(__name__)

T = TypeVar("T")

ADMISSION_INTERVAL_SECONDS = 0.1
REFILL_INTERVAL_SECONDS = 1.0
SESSION_IDLE_SECONDS = 600.0
SOFT_QUOTA_THRESHOLD = 5
SOFT_QUOTA_MIN_PROBABILITY = 0.25
LATENCY_EMA_WEIGHT = 0.2

SleepFn = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Admit queued callables under per-session token, concurrency and cooldown limits.

    Items are ordered by priority (higher first) then arrival. A session that
    cannot admit its head item is skipped for the rest of the tick so its own
    order holds while other sessions keep flowing. With ``track_rate_limits``
    off, rate-limit failures are treated like any other error instead of
    cooling the session down.
    """

    def __init__(
        self,
        config: LimiterConfig,
        *,
        name: str = "limiter",
        clock: Callable[[], float] = time.time,
        sleep: SleepFn = asyncio.sleep,
        rng: random.Random | None = None,
        admission_interval: float = ADMISSION_INTERVAL_SECONDS,
        refill_interval: float = REFILL_INTERVAL_SECONDS,
        session_idle_seconds: float = SESSION_IDLE_SECONDS,
        soft_quota_threshold: int = SOFT_QUOTA_THRESHOLD,
        should_retry: Callable[[BaseException], bool] | None = None,
        track_rate_limits: bool = True,
    ) -> None:
        self.config = config
        self.name = name
        self._should_retry = should_retry
        self._track_rate_limits = track_rate_limits
        self._clock = clock
        self._sleep = sleep
        self._rng = rng if rng is not None else random.Random()
        self._session_idle_seconds = session_idle_seconds
        self._soft_quota_threshold = soft_quota_threshold

        self._queue: list[QueueItem] = []
        self._sessions: dict[str, TokenBucketState] = {}
        self._inflight: set[asyncio.Task[None]] = set()
        self._sequence = 0
        self._retry_sequence = 0
        self._metrics = RateLimiterMetrics()
        self._destroyed = False

        self._admission_task = PeriodicTask(f"{name}-admission", admission_interval, self._drain)
        self._refill_task = PeriodicTask(f"{name}-refill", refill_interval, self._refill)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    async def execute(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        priority: int = 0,
        session_id: str = DEFAULT_SESSION,
    ) -> T:
        """Queue ``fn`` and return its result once admitted and completed."""
        if self._destroyed:
            raise LimiterError(f"Rate limiter '{self.name}' has been destroyed.")
        self._ensure_started()

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._sequence += 1
        item = QueueItem(
            fn=fn,
            future=future,
            session_id=session_id,
            priority=priority,
            sequence=self._sequence,
            enqueued_at=self._clock(),
        )
        self._session(session_id)
        self._metrics.total_requests += 1
        self._enqueue(item)
        self._drain()
        return await future

    def update_rate_limit(self, session_id: str, headers: Mapping[str, str]) -> None:
        """Record advisory quota headers from an upstream response."""
        state = self._session(session_id)
        remaining, reset_at = parse_rate_limit_headers(headers, now=self._clock())
        if remaining is not None:
            state.remaining_quota = remaining
        if reset_at is not None:
            state.quota_reset_at = reset_at

    def get_session_state(self, session_id: str) -> TokenBucketState | None:
        return self._sessions.get(session_id)

    def get_metrics(self) -> RateLimiterMetrics:
        metrics = RateLimiterMetrics(**vars(self._metrics))
        metrics.queue_depth = len(self._queue)
        metrics.active_requests = sum(state.active for state in self._sessions.values())
        metrics.sessions = len(self._sessions)
        return metrics

    def clear_queue(self, reason: str = "Queue cleared") -> int:
        """Reject every queued (not yet admitted) item and return how many were dropped."""
        dropped = self._queue
        self._queue = []
        for item in dropped:
            if not item.future.done():
                item.future.set_exception(QueueClearedError(reason))
        if dropped:
            logger.info("limiter_queue_cleared name=%s dropped=%s", self.name, len(dropped))
        return len(dropped)

    async def wait_for_completion(self, timeout: float | None = None) -> bool:
        """Wait until queue and in-flight work drain; return False on timeout."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._queue or self._inflight:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            step = ADMISSION_INTERVAL_SECONDS if remaining is None else min(remaining, ADMISSION_INTERVAL_SECONDS)
            if self._inflight:
                await asyncio.wait(set(self._inflight), timeout=step)
            else:
                await asyncio.sleep(step)
        return True

    async def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        await self._admission_task.stop()
        await self._refill_task.stop()
        self.clear_queue("Rate limiter destroyed")

    def _ensure_started(self) -> None:
        self._admission_task.start()
        self._refill_task.start()

    def _session(self, session_id: str) -> TokenBucketState:
        state = self._sessions.get(session_id)
        if state is None:
            now = self._clock()
            state = TokenBucketState(
                tokens=float(self.config.burst_capacity),
                requests_per_second=self.config.requests_per_second,
                last_refill=now,
                last_used=now,
            )
            self._sessions[session_id] = state
        return state

    def _enqueue(self, item: QueueItem) -> None:
        self._queue.append(item)
        self._queue.sort(key=lambda queued: queued.sort_key)

    def _requeue_front(self, item: QueueItem) -> None:
        self._retry_sequence -= 1
        item.sequence = self._retry_sequence
        item.enqueued_at = self._clock()
        self._enqueue(item)

    def _drain(self) -> None:
        if self._destroyed or not self._queue:
            return
        now = self._clock()
        blocked: set[str] = set()
        for item in list(self._queue):
            if item.future.done():
                self._queue.remove(item)
                continue
            session_id = item.session_id
            if session_id in blocked:
                continue
            state = self._session(session_id)
            if not self._can_admit(state, now):
                blocked.add(session_id)
                continue
            self._queue.remove(item)
            state.tokens -= 1
            state.active += 1
            state.last_used = now
            task = asyncio.get_running_loop().create_task(self._run(item, state))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    def _can_admit(self, state: TokenBucketState, now: float) -> bool:
        if state.is_limited:
            if now < state.cooldown_until:
                return False
            state.is_limited = False
            state.cooldown_until = 0.0
        if state.active >= self.config.max_concurrent:
            return False
        if state.tokens < 1:
            return False
        return self._passes_quota_throttle(state, now)

    def _passes_quota_throttle(self, state: TokenBucketState, now: float) -> bool:
        if state.remaining_quota is None or state.quota_reset_at is None:
            return True
        if now >= state.quota_reset_at:
            state.remaining_quota = None
            state.quota_reset_at = None
            return True
        if state.remaining_quota > self._soft_quota_threshold:
            return True
        probability = max(
            SOFT_QUOTA_MIN_PROBABILITY, state.remaining_quota / self._soft_quota_threshold
        )
        return self._rng.random() < probability

    def _refill(self) -> None:
        now = self._clock()
        for session_id, state in list(self._sessions.items()):
            elapsed = max(0.0, now - state.last_refill)
            state.tokens = min(
                float(self.config.burst_capacity),
                state.tokens + elapsed * state.requests_per_second,
            )
            state.last_refill = now
            if self._is_idle(session_id, state, now):
                del self._sessions[session_id]
        self._drain()

    def _is_idle(self, session_id: str, state: TokenBucketState, now: float) -> bool:
        if state.active or state.is_limited:
            return False
        if now - state.last_used < self._session_idle_seconds:
            return False
        return not any(item.session_id == session_id for item in self._queue)

    async def _run(self, item: QueueItem, state: TokenBucketState) -> None:
        started = self._clock()
        try:
            result = await asyncio.wait_for(item.fn(), timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError:
            error: BaseException = RequestTimeoutError("Request timeout")
        except asyncio.CancelledError:
            state.active -= 1
            if not item.future.done():
                item.future.cancel()
            raise
        except Exception as exc:
            error = exc
        else:
            state.active -= 1
            self._record_success(started)
            if not item.future.done():
                item.future.set_result(result)
            self._drain()
            return

        state.active -= 1
        item.last_error = error
        await self._handle_failure(item, state, error)
        self._drain()

    def _record_success(self, started: float) -> None:
        metrics = self._metrics
        metrics.successful_requests += 1
        elapsed_ms = max(0.0, self._clock() - started) * 1000
        if metrics.successful_requests == 1:
            metrics.average_latency_ms = elapsed_ms
        else:
            metrics.average_latency_ms = (
                metrics.average_latency_ms * (1 - LATENCY_EMA_WEIGHT) + elapsed_ms * LATENCY_EMA_WEIGHT
            )

    async def _handle_failure(
        self, item: QueueItem, state: TokenBucketState, error: BaseException
    ) -> None:
        can_retry = item.retries < self.config.max_retries and not self._destroyed
        if item.future.done():
            return

        if self._track_rate_limits and is_rate_limit_error(error):
            self._metrics.rate_limited_requests += 1
            cooldown = self._cooldown_seconds(state, error)
            state.is_limited = True
            state.cooldown_until = self._clock() + cooldown
            logger.warning(
                "limiter_rate_limited name=%s session=%s cooldown_s=%.1f retries=%s",
                self.name,
                item.session_id,
                cooldown,
                item.retries,
            )
            if can_retry:
                item.retries += 1
                self._metrics.retried_requests += 1
                self._requeue_front(item)
                return
        elif can_retry and (self._should_retry is None or self._should_retry(error)):
            item.retries += 1
            self._metrics.retried_requests += 1
            delay = backoff_delay(
                self.config.retry_delay_ms / 1000, item.retries, rng=self._rng
            )
            logger.warning(
                "limiter_retry name=%s session=%s attempt=%s delay_s=%.2f error=%s",
                self.name,
                item.session_id,
                item.retries,
                delay,
                error,
            )
            await self._sleep(delay)
            if self._destroyed:
                self._reject(item, error)
                return
            self._requeue_front(item)
            return

        self._reject(item, error)

    def _reject(self, item: QueueItem, error: BaseException) -> None:
        self._metrics.failed_requests += 1
        logger.warning(
            "limiter_rejected name=%s session=%s retries=%s error=%s",
            self.name,
            item.session_id,
            item.retries,
            error,
        )
        if not item.future.done():
            item.future.set_exception(error)

    def _cooldown_seconds(self, state: TokenBucketState, error: BaseException) -> float:
        now = self._clock()
        retry_after = error.retry_after if isinstance(error, RateLimitError) else None
        if retry_after is not None and retry_after > 0:
            base = retry_after
        elif state.quota_reset_at is not None and state.quota_reset_at > now:
            base = state.quota_reset_at - now
        else:
            base = self.config.rate_limit_cooldown_seconds
        return base + cooldown_jitter(self.config.rate_limit_jitter_seconds, rng=self._rng)


__all__ = ["DEFAULT_SESSION", "RateLimiter", "TaskFn"]
