"""Data model contracts for cross-module use."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union


class TweetKind(str, Enum):
    TWEET = "tweet"
    RETWEET = "retweet"
    QUOTE = "quote"


class Verification(str, Enum):
    BLUE = "blue"
    BUSINESS = "business"


class ScrapeStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class Author:
    username: str
    verification: Verification | None = None
    name: str | None = None
    profile_photo_url: str | None = None


@dataclass(frozen=True)
class Profile:
    username: str
    verification: Verification | None = None
    name: str | None = None
    profile_photo_url: str | None = None
    bio: str | None = None
    profile_link: str = ""
    cover_photo_url: str | None = None
    registration_date: str = ""

    def as_author(self) -> Author:
        return Author(
            username=self.username,
            verification=self.verification,
            name=self.name,
            profile_photo_url=self.profile_photo_url,
        )


@dataclass(frozen=True)
class ProfileStats:
    tweets: int = 0
    following: int = 0
    followers: int = 0
    likes: int = 0


@dataclass(frozen=True)
class TweetMetrics:
    comments: int = 0
    retweets: int = 0
    quotes: int = 0
    likes: int = 0
    views: int = 0


@dataclass(frozen=True)
class Tweet:
    """A plain timeline post."""

    kind: ClassVar[TweetKind] = TweetKind.TWEET

    author: Author
    content: str
    url: str
    created_at: str
    metrics: TweetMetrics = TweetMetrics()

    @property
    def key(self) -> str:
        return self.url


@dataclass(frozen=True)
class Retweet:
    """A repost by the profile owner; the reposted post is kept as ``original``."""

    kind: ClassVar[TweetKind] = TweetKind.RETWEET

    author: Author
    url: str
    created_at: str
    original: Tweet
    metrics: TweetMetrics = TweetMetrics()
    content: str = ""

    @property
    def key(self) -> str:
        return self.url


@dataclass(frozen=True)
class QuoteTweet:
    """A post quoting another one.

    Only the immediate quoted post is captured; a quote of a quote keeps the
    surface text of the inner card.
    """

    kind: ClassVar[TweetKind] = TweetKind.QUOTE

    author: Author
    content: str
    url: str
    created_at: str
    quoted: Tweet
    metrics: TweetMetrics = TweetMetrics()

    @property
    def key(self) -> str:
        return self.url


TimelineItem = Union[Tweet, Retweet, QuoteTweet]


def item_child(item: TimelineItem) -> Tweet | None:
    if isinstance(item, Retweet):
        return item.original
    if isinstance(item, QuoteTweet):
        return item.quoted
    return None


@dataclass(frozen=True)
class PageInfo:
    has_show_more: bool = False
    has_link: bool = False
    link_href: str | None = None
    item_count: int = 0


@dataclass(frozen=True)
class PageData:
    profile: Profile | None = None
    stats: ProfileStats | None = None
    items: tuple[TimelineItem, ...] = ()
    page_info: PageInfo = PageInfo()
    has_content: bool = True


@dataclass(frozen=True)
class XDataDocument:
    profile: Profile | None = None
    stats: ProfileStats | None = None
    tweets: tuple[TimelineItem, ...] = ()


@dataclass(frozen=True)
class ScrapeOutcome:
    status: ScrapeStatus
    document: XDataDocument | None = None
    reason: str | None = None
    error: str | None = None
    attempts: int = 0
    instance: str | None = None
    requested: int = 0
    stop_reason: str | None = None

    @property
    def collected(self) -> int:
        return len(self.document.tweets) if self.document is not None else 0

    @property
    def ok(self) -> bool:
        return self.status is not ScrapeStatus.FAILED
