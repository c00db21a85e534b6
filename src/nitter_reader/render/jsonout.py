"""JSON document rendering with the snake_case keys consumers expect."""

from __future__ import annotations

import json
from typing import Any

from nitter_reader.models import (
    Author,
    Profile,
    ProfileStats,
    Tweet,
    TimelineItem,
    TweetKind,
    XDataDocument,
    item_child,
)


def render_json(document: XDataDocument) -> str:
    return json.dumps(document_to_dict(document), indent=2, ensure_ascii=False)


def document_to_dict(document: XDataDocument) -> dict[str, Any]:
    return {
        "profile": profile_to_dict(document.profile) if document.profile is not None else None,
        "stats": stats_to_dict(document.stats) if document.stats is not None else None,
        "tweets": [item_to_dict(item) for item in document.tweets],
    }


def profile_to_dict(profile: Profile) -> dict[str, Any]:
    data = author_to_dict(profile.as_author())
    data["profile_link"] = profile.profile_link
    data["registration_date"] = profile.registration_date
    if profile.bio is not None:
        data["bio"] = profile.bio
    if profile.cover_photo_url is not None:
        data["cover_photo_url"] = profile.cover_photo_url
    return data


def author_to_dict(author: Author) -> dict[str, Any]:
    # Optional fields are omitted rather than serialised as null.
    data: dict[str, Any] = {"username": author.username}
    if author.verification is not None:
        data["verification"] = author.verification.value
    if author.name is not None:
        data["name"] = author.name
    if author.profile_photo_url is not None:
        data["profile_photo_url"] = author.profile_photo_url
    return data


def stats_to_dict(stats: ProfileStats) -> dict[str, int]:
    return {
        "tweets": stats.tweets,
        "following": stats.following,
        "followers": stats.followers,
        "likes": stats.likes,
    }


def item_to_dict(item: TimelineItem) -> dict[str, Any]:
    data = _base_tweet(item, item.kind)
    child = item_child(item)
    if child is not None:
        data["child"] = _base_tweet(child, TweetKind.TWEET)
    return data


def _base_tweet(item: TimelineItem | Tweet, kind: TweetKind) -> dict[str, Any]:
    return {
        "author": author_to_dict(item.author),
        "content": item.content,
        "url": item.url,
        "created_at": item.created_at,
        "metrics": {
            "comments": item.metrics.comments,
            "retweets": item.metrics.retweets,
            "quotes": item.metrics.quotes,
            "likes": item.metrics.likes,
            "views": item.metrics.views,
        },
        "kind": kind.value,
    }
