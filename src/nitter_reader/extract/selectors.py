"""Selector defaults for Nitter markup and override resolution."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

SelectorPack = dict[str, str]

DEFAULT_SELECTOR_PACK: dict[str, str] = {
    "profile.username": ".profile-card-username",
    "profile.fullname": ".profile-card-fullname",
    "profile.avatar": ".profile-card-avatar img",
    "profile.bio": ".profile-bio",
    "profile.website": ".profile-website a",
    "profile.banner": ".profile-banner a",
    "profile.joindate": ".profile-joindate",
    "profile.joindate_title": ".profile-joindate span[title]",
    "stats.tweets": ".profile-statlist .posts .profile-stat-num",
    "stats.following": ".profile-statlist .following .profile-stat-num",
    "stats.followers": ".profile-statlist .followers .profile-stat-num",
    "stats.likes": ".profile-statlist .likes .profile-stat-num",
    "timeline.item": ".timeline .timeline-item",
    "timeline.show_more": ".timeline .show-more",
    "tweet.body": ".tweet-body",
    "tweet.header": ".tweet-header",
    "tweet.stats": ".tweet-stats",
    "tweet.link": ".tweet-link",
    "tweet.date": ".tweet-date a",
    "tweet.username": ".username",
    "tweet.fullname": ".fullname",
    "tweet.avatar": ".tweet-avatar img",
    "tweet.content": ".tweet-content",
    "tweet.retweet_header": ".retweet-header",
    "tweet.quote": ".quote, .quoted-tweet",
    "tweet.quote_link": "a[href*='/status/']",
    "verified.icon": ".verified-icon",
}

STAT_ICONS: dict[str, str] = {
    "comments": "icon-comment",
    "retweets": "icon-retweet",
    "quotes": "icon-quote",
    "likes": "icon-heart",
    "views": "icon-view",
}
VIEWS_FALLBACK_ICON = "icon-play"


@dataclass(frozen=True)
class SelectorPackResolution:
    selectors: SelectorPack
    warnings: tuple[str, ...] = ()
    loaded_override: bool = False


def default_selector_pack() -> SelectorPack:
    """Return a mutable copy of built-in selector defaults."""
    return dict(DEFAULT_SELECTOR_PACK)


def resolve_selector_pack(override_data: Mapping[str, Any] | None = None) -> SelectorPackResolution:
    """Merge overrides onto the defaults; unknown or malformed keys become warnings."""
    selectors = default_selector_pack()
    if override_data is None:
        return SelectorPackResolution(selectors=selectors)

    warnings: list[str] = []
    allowed = set(DEFAULT_SELECTOR_PACK)
    for key in sorted(override_data):
        value = override_data[key]
        if key not in allowed:
            warnings.append(
                f"Unknown selector override key '{key}'. Allowed keys: {', '.join(sorted(allowed))}."
            )
            continue
        if not isinstance(value, str) or not value.strip():
            warnings.append(f"Selector override for '{key}' must be a non-empty string; ignoring.")
            continue
        selectors[key] = value.strip()
    return SelectorPackResolution(
        selectors=selectors,
        warnings=tuple(warnings),
        loaded_override=True,
    )
