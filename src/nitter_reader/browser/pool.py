"""Bounded pool of reusable browser contexts."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Any, Awaitable, Callable, TypeVar

from nitter_reader.errors import BrowserError, BrowserPoolError, PoolTaskTimeoutError

from .policy import install_resource_routing
from .session import BrowserContext, BrowserEngine, BrowserPage

logger = logging.getLogger(__name__)

T = TypeVar("T")

PageTask = Callable[[BrowserPage], Awaitable[T]]


@dataclass(frozen=True)
class PoolStatus:
    initialized: bool
    size: int
    available: int
    busy: int
    queued: int
    completed: int
    failed: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "initialized": self.initialized,
            "size": self.size,
            "available": self.available,
            "busy": self.busy,
            "queued": self.queued,
            "completed": self.completed,
            "failed": self.failed,
        }


class BrowserPool:
    """Run page tasks on at most ``worker_count`` contexts at a time.

    Each task gets a fresh page inside a pooled context. The page is closed
    and the context returned once the task settles, including on timeout.
    """

    def __init__(
        self,
        engine: BrowserEngine,
        *,
        task_timeout_seconds: float = 600.0,
        block_resources: bool = True,
    ) -> None:
        self._engine = engine
        self.task_timeout_seconds = task_timeout_seconds
        self.block_resources = block_resources
        self._contexts: list[BrowserContext] = []
        self._idle: asyncio.Queue[BrowserContext | None] = asyncio.Queue()
        self._initialized = False
        self._destroyed = False
        self._busy = 0
        self._waiting = 0
        self._completed = 0
        self._failed = 0
        self._settled = asyncio.Event()
        self._settled.set()

    async def initialize(self, worker_count: int) -> None:
        if worker_count <= 0:
            raise BrowserPoolError("worker_count must be > 0.")
        if self._destroyed:
            raise BrowserPoolError("Browser pool has been destroyed.")
        if self._initialized:
            return

        await self._engine.start()
        try:
            for _ in range(worker_count):
                context = await self._engine.new_context()
                self._contexts.append(context)
                self._idle.put_nowait(context)
        except BrowserError:
            await self._close_all()
            raise
        self._initialized = True
        logger.info("browser_pool_ready workers=%s", worker_count)

    async def execute(self, task: PageTask[T]) -> T:
        if not self._initialized or self._destroyed:
            raise BrowserPoolError("Browser pool is not initialized.")

        self._waiting += 1
        try:
            context = await self._idle.get()
        finally:
            self._waiting -= 1
        if context is None:
            raise BrowserPoolError("Browser pool was destroyed while waiting for a context.")

        self._busy += 1
        self._settled.clear()
        page: BrowserPage | None = None
        try:
            try:
                page = await context.new_page()
                if self.block_resources:
                    await install_resource_routing(page, block_resources=True)
            except Exception as exc:
                context = await self._replace_context(context)
                raise BrowserError(f"Could not open a browser page: {exc}") from exc
            result = await asyncio.wait_for(task(page), timeout=self.task_timeout_seconds)
        except asyncio.TimeoutError:
            self._failed += 1
            logger.error("browser_pool_task_timeout timeout_s=%s", self.task_timeout_seconds)
            raise PoolTaskTimeoutError(
                f"Browser task timed out after {self.task_timeout_seconds:g}s."
            ) from None
        except Exception as exc:
            self._failed += 1
            logger.warning("browser_pool_task_failed error=%s", exc)
            raise
        else:
            self._completed += 1
            return result
        finally:
            if page is not None:
                await _close_quietly(page)
            self._release(context)
            self._busy -= 1
            if self._busy == 0:
                self._settled.set()

    def get_status(self) -> PoolStatus:
        return PoolStatus(
            initialized=self._initialized and not self._destroyed,
            size=len(self._contexts),
            available=self._idle.qsize() if not self._destroyed else 0,
            busy=self._busy,
            queued=self._waiting,
            completed=self._completed,
            failed=self._failed,
        )

    async def destroy(self, timeout: float | None = None) -> None:
        """Refuse new work, let running tasks settle, then close contexts and engine."""
        if self._destroyed:
            return
        self._destroyed = True
        for _ in range(self._waiting):
            self._idle.put_nowait(None)
        if self._busy:
            try:
                await asyncio.wait_for(self._settled.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("browser_pool_destroy_timeout busy=%s", self._busy)
        await self._close_all()
        logger.info(
            "browser_pool_destroyed completed=%s failed=%s", self._completed, self._failed
        )

    async def _replace_context(self, context: BrowserContext) -> BrowserContext:
        """Swap a broken context for a fresh one; keeps the old one if the browser refuses."""
        try:
            fresh = await self._engine.new_context()
        except Exception as exc:
            logger.error("browser_pool_context_replace_failed error=%s", exc)
            return context
        await _close_quietly(context)
        self._contexts = [fresh if current is context else current for current in self._contexts]
        logger.warning("browser_pool_context_replaced size=%s", len(self._contexts))
        return fresh

    def _release(self, context: BrowserContext) -> None:
        if self._destroyed:
            return
        self._idle.put_nowait(context)

    async def _close_all(self) -> None:
        contexts = self._contexts
        self._contexts = []
        for context in contexts:
            await _close_quietly(context)
        try:
            await self._engine.close()
        except BrowserError as exc:
            logger.warning("browser_pool_engine_close_failed error=%s", exc)


async def _close_quietly(target: Any) -> None:
    try:
        await target.close()
    except Exception as exc:
        logger.debug("browser_close_ignored target=%s error=%s", type(target).__name__, exc)
