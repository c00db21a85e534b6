"""In-memory stand-ins for the browser engine and instance prober."""

from __future__ import annotations

from typing import Any, Callable

from nitter_reader.errors import BrowserError
from nitter_reader.instances.base import ProbeResult


class FakePage:
    def __init__(self) -> None:
        self.closed = False
        self.routes: list[str] = []

    async def route(self, url, handler) -> None:
        self.routes.append(url)

    async def goto(self, url: str, **kwargs) -> None:
        return None

    async def content(self) -> str:
        return "<html></html>"

    async def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self, page_factory: Callable[[], Any] = FakePage) -> None:
        self.pages: list[Any] = []
        self.closed = False
        self.page_factory = page_factory

    async def new_page(self) -> Any:
        page = self.page_factory()
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True


class FakeEngine:
    def __init__(
        self,
        *,
        fail_context_at: int | None = None,
        page_factory: Callable[[], Any] = FakePage,
    ) -> None:
        self.started = False
        self.closed = False
        self.contexts: list[FakeContext] = []
        self.fail_context_at = fail_context_at
        self.page_factory = page_factory

    async def start(self) -> None:
        self.started = True

    async def new_context(self) -> FakeContext:
        if self.fail_context_at is not None and len(self.contexts) == self.fail_context_at:
            raise BrowserError("context creation failed")
        context = FakeContext(self.page_factory)
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True


class FakeProber:
    def __init__(self, results: dict[str, ProbeResult] | None = None) -> None:
        self.results = results or {}
        self.calls: list[str] = []
        self.closed = False

    async def probe(self, url: str) -> ProbeResult:
        self.calls.append(url)
        return self.results.get(url, ProbeResult(ok=True, response_time_ms=50.0, status_code=200))

    async def aclose(self) -> None:
        self.closed = True
