"""Collection state and result contracts for the pagination loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Protocol

from nitter_reader.models import Profile, ProfileStats, TimelineItem, XDataDocument


class StopReason(str, Enum):
    LIMIT_REACHED = "limit_reached"
    NO_NEW_CONTENT = "no_new_content"
    NO_MORE_PAGES = "no_more_pages"
    CURSOR_LOOP = "cursor_loop"
    NAVIGATION_FAILED = "navigation_failed"


@dataclass(frozen=True)
class CollectionLimits:
    target_count: int = 100
    delay_between_pages_seconds: float = 6.0
    max_retries: int = 3
    max_empty_pages: int = 5


@dataclass
class CollectionState:
    """Per-attempt accumulator; never shared between attempts."""

    items: list[TimelineItem] = field(default_factory=list)
    seen_keys: set[str] = field(default_factory=set)
    seen_cursors: set[str] = field(default_factory=set)
    consecutive_empty_pages: int = 0
    pages: int = 0
    profile: Profile | None = None
    stats: ProfileStats | None = None

    def snapshot(self, target_count: int) -> XDataDocument:
        return XDataDocument(
            profile=self.profile,
            stats=self.stats,
            tweets=tuple(self.items[:target_count]),
        )


@dataclass(frozen=True)
class CollectionResult:
    document: XDataDocument
    stop_reason: StopReason
    pages: int
    detail: str = ""
    rate_limited: bool = False

    @property
    def count(self) -> int:
        return len(self.document.tweets)


ProgressFn = Callable[[XDataDocument], None]


class Collector(Protocol):
    async def scrape(
        self,
        page: object,
        handle: str,
        *,
        instance_url: str,
        limits: CollectionLimits,
        session_id: str | None = None,
        on_progress: ProgressFn | None = None,
    ) -> CollectionResult:
        """Collect one handle's timeline through ``page`` until a stop condition fires."""


def add_new_items(state: CollectionState, items: Iterable[TimelineItem]) -> int:
    """Append unseen items by key and update the empty-page counter; return how many were new."""
    added = 0
    for item in items:
        key = item.key
        if not key or key in state.seen_keys:
            continue
        state.seen_keys.add(key)
        state.items.append(item)
        added += 1
    if added:
        state.consecutive_empty_pages = 0
    else:
        state.consecutive_empty_pages += 1
    return added
