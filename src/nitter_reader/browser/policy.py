"""Resource-routing, response observation and block-page detection policies."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, Protocol

HEAVY_RESOURCE_TYPES = frozenset({"image", "media", "font", "stylesheet"})

_RATE_LIMIT_MARKERS = (
    "instance has been rate limited",
    "rate limited",
    "too many requests",
)
_NOT_FOUND_MARKERS = ("not found",)
_SUSPENDED_MARKERS = ("has been suspended", "account suspended")
_PROTECTED_MARKERS = ("tweets are protected", "account is private")

ResponseCallback = Callable[[int, Mapping[str, str]], None]
RouteHandler = Callable[[Any, Any], Awaitable[Any]]


class Route(Protocol):
    async def abort(self) -> Any: ...

    async def continue_(self) -> Any: ...


class RoutablePage(Protocol):
    async def route(self, url: str, handler: RouteHandler) -> Any: ...


class EventPage(Protocol):
    def on(self, event: str, handler: Callable[[Any], Any]) -> Any:
        """Subscribe to a page event."""

    def remove_listener(self, event: str, handler: Callable[[Any], Any]) -> Any:
        """Unsubscribe from a page event."""


def skip_resources(resource_types: Iterable[str] = HEAVY_RESOURCE_TYPES) -> RouteHandler:
    """Route handler aborting requests of ``resource_types`` and passing the rest through."""
    skipped = frozenset(kind.lower() for kind in resource_types)

    async def _route(route: Route, request: Any) -> Any:
        if str(getattr(request, "resource_type", "")).lower() in skipped:
            return await route.abort()
        return await route.continue_()

    return _route


async def install_resource_routing(
    page: RoutablePage,
    *,
    block_resources: bool,
    resource_types: Iterable[str] = HEAVY_RESOURCE_TYPES,
) -> frozenset[str]:
    """Stop ``page`` from fetching heavy assets; returns the skipped types, empty when off."""
    if not block_resources:
        return frozenset()
    skipped = frozenset(kind.lower() for kind in resource_types)
    if skipped:
        await page.route("**/*", skip_resources(skipped))
    return skipped


def observe_responses(page: EventPage, callback: ResponseCallback) -> Callable[[], None]:
    """Forward status and headers of document responses to ``callback``.

    Returns a function that detaches the listener.
    """

    def _handler(response: Any) -> None:
        request = getattr(response, "request", None)
        if str(getattr(request, "resource_type", "document")) != "document":
            return
        headers = getattr(response, "headers", None) or {}
        callback(int(getattr(response, "status", 0)), dict(headers))

    page.on("response", _handler)

    def _detach() -> None:
        page.remove_listener("response", _handler)

    return _detach


def detect_blocked_page(current_url: str, page_title: str, body_text: str) -> str | None:
    """Return a category when the page is a Nitter error page instead of a timeline."""
    haystack = f"{page_title}\n{body_text}".lower()

    if any(marker in haystack for marker in _RATE_LIMIT_MARKERS):
        return "rate_limited"
    if any(marker in haystack for marker in _SUSPENDED_MARKERS):
        return "suspended"
    if any(marker in haystack for marker in _PROTECTED_MARKERS):
        return "protected"
    if "user" in haystack and any(marker in haystack for marker in _NOT_FOUND_MARKERS):
        return "not_found"
    if str(current_url).rstrip("/").endswith("/404"):
        return "not_found"
    return None
