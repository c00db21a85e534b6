"""HTTP reachability probe for Nitter instances."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import httpx
from bs4 import BeautifulSoup

from nitter_reader.config import DEFAULT_USER_AGENT

from .base import ProbeResult

logger = logging.getLogger(__name__)

CONTENT_MARKERS = (".timeline", ".profile-card", ".timeline-item")


class InstanceProber:
    """Fetch ``{url}/{handle}`` and require an HTML answer.

    With ``thorough`` enabled the body must also contain timeline or profile
    markup, which filters out instances serving a placeholder or error shell.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 5.0,
        handle: str = "elonmusk",
        user_agent: str = DEFAULT_USER_AGENT,
        thorough: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.handle = handle
        self.user_agent = user_agent
        self.thorough = thorough
        self._transport = transport
        self._clock = clock
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                follow_redirects=True,
                transport=self._transport,
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                    "Accept-Language": "en-US,en;q=0.5",
                },
            )
        return self._client

    async def probe(self, url: str) -> ProbeResult:
        client = await self._get_client()
        started = self._clock()
        try:
            response = await client.get(f"{url.rstrip('/')}/{self.handle}")
        except httpx.TimeoutException:
            return ProbeResult(ok=False, error="timeout")
        except httpx.HTTPError as exc:
            return ProbeResult(ok=False, error=f"{type(exc).__name__}: {exc}")
        elapsed_ms = (self._clock() - started) * 1000

        if response.status_code == 429:
            return ProbeResult(
                ok=False,
                response_time_ms=elapsed_ms,
                status_code=429,
                is_rate_limit=True,
                error="rate limited",
            )
        if not response.is_success:
            return ProbeResult(
                ok=False,
                response_time_ms=elapsed_ms,
                status_code=response.status_code,
                error=f"HTTP {response.status_code}",
            )
        content_type = response.headers.get("content-type", "")
        if "text/html" not in content_type:
            return ProbeResult(
                ok=False,
                response_time_ms=elapsed_ms,
                status_code=response.status_code,
                error=f"unexpected content-type '{content_type}'",
            )
        if self.thorough and not has_content_markers(response.text):
            return ProbeResult(
                ok=False,
                response_time_ms=elapsed_ms,
                status_code=response.status_code,
                error="missing timeline markup",
            )
        return ProbeResult(ok=True, response_time_ms=elapsed_ms, status_code=response.status_code)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def has_content_markers(html: str) -> bool:
    soup = BeautifulSoup(html, "html.parser")
    return any(soup.select_one(selector) is not None for selector in CONTENT_MARKERS)
