"""Playwright engine lifecycle manager and protocols."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
import logging
from typing import Any, Protocol

from nitter_reader.config import BrowserConfig
from nitter_reader.errors import BrowserError

logger = logging.getLogger(__name__)


class BrowserPage(Protocol):
    async def goto(self, url: str, **kwargs: Any) -> Any:
        """Navigate to a URL."""

    async def content(self) -> str:
        """Return the rendered HTML."""

    async def close(self) -> None:
        """Close the page."""


class BrowserContext(Protocol):
    async def new_page(self) -> BrowserPage:
        """Open a page inside this context."""

    async def close(self) -> None:
        """Close the context and its pages."""


class BrowserEngine(Protocol):
    async def start(self) -> None:
        """Launch the shared browser."""

    async def new_context(self) -> BrowserContext:
        """Create an isolated browser context."""

    async def close(self) -> None:
        """Tear down the browser and the driver."""


@dataclass(frozen=True)
class BrowserEngineOptions:
    engine: str
    headless: bool
    navigation_timeout_ms: int
    action_timeout_ms: int
    locale: str
    user_agent: str
    viewport_width: int
    viewport_height: int


class PlaywrightEngine:
    """Own one Playwright driver and one launched browser shared by all contexts."""

    def __init__(
        self,
        config: BrowserConfig,
        *,
        engine: str | None = None,
        headless: bool | None = None,
        playwright_factory: Callable[[], AbstractAsyncContextManager[Any]] | None = None,
    ) -> None:
        self.options = BrowserEngineOptions(
            engine=engine if engine is not None else config.engine,
            headless=headless if headless is not None else config.headless,
            navigation_timeout_ms=config.navigation_timeout_ms,
            action_timeout_ms=config.action_timeout_ms,
            locale=config.locale,
            user_agent=config.user_agent,
            viewport_width=config.viewport_width,
            viewport_height=config.viewport_height,
        )
        self._playwright_factory = playwright_factory or _default_playwright_factory
        self._playwright_cm: AbstractAsyncContextManager[Any] | None = None
        self._browser: Any | None = None

    @property
    def started(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        if self._browser is not None:
            return

        try:
            self._playwright_cm = self._playwright_factory()
            playwright = await self._playwright_cm.__aenter__()

            launcher = getattr(playwright, self.options.engine, None)
            if launcher is None:
                raise BrowserError(
                    f"Unsupported browser engine '{self.options.engine}' for Playwright session."
                )
            self._browser = await launcher.launch(headless=self.options.headless)
        except BrowserError:
            await self._teardown(raise_on_error=False)
            raise
        except Exception as exc:
            await self._teardown(raise_on_error=False)
            raise BrowserError(f"Failed to launch browser: {exc}") from exc
        logger.info(
            "browser_started engine=%s headless=%s", self.options.engine, self.options.headless
        )

    async def new_context(self) -> BrowserContext:
        if self._browser is None:
            raise BrowserError("Browser engine is not started.")

        try:
            context = await self._browser.new_context(
                locale=self.options.locale,
                user_agent=self.options.user_agent,
                viewport={
                    "width": self.options.viewport_width,
                    "height": self.options.viewport_height,
                },
            )
            context.set_default_timeout(self.options.action_timeout_ms)
            context.set_default_navigation_timeout(self.options.navigation_timeout_ms)
        except Exception as exc:
            raise BrowserError(f"Failed to create browser context: {exc}") from exc
        return context

    async def close(self) -> None:
        await self._teardown(raise_on_error=True)

    async def __aenter__(self) -> PlaywrightEngine:
        await self.start()
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        try:
            await self.close()
        except BrowserError:
            if exc_type is None:
                raise
        return False

    async def _teardown(self, *, raise_on_error: bool) -> None:
        errors: list[str] = []

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as exc:
                errors.append(f"browser close failed: {exc}")
            finally:
                self._browser = None

        if self._playwright_cm is not None:
            try:
                await self._playwright_cm.__aexit__(None, None, None)
            except Exception as exc:
                errors.append(f"playwright teardown failed: {exc}")
            finally:
                self._playwright_cm = None

        if raise_on_error and errors:
            raise BrowserError(
                "Errors occurred during browser teardown: " + "; ".join(errors)
            )


def _default_playwright_factory() -> AbstractAsyncContextManager[Any]:
    try:
        from playwright.async_api import async_playwright
    except ModuleNotFoundError as exc:
        raise BrowserError(
            "Playwright is not available. Install dependencies and run "
            "`python -m playwright install chromium`."
        ) from exc
    return async_playwright()
