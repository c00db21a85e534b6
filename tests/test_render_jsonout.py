"""JSON document shape for profiles, stats and the three timeline item kinds."""

from __future__ import annotations

import json

from nitter_reader.models import (
    Author,
    Profile,
    ProfileStats,
    QuoteTweet,
    Retweet,
    Tweet,
    TweetMetrics,
    Verification,
    XDataDocument,
)
from nitter_reader.render.jsonout import document_to_dict, render_json

JACK = Author(username="jack", verification=Verification.BLUE, name="jack")
BOB = Author(username="bob")


def _tweet(status_id: int, author: Author = JACK, content: str = "hello") -> Tweet:
    return Tweet(
        author=author,
        content=content,
        url=f"https://n.example/{author.username}/status/{status_id}",
        created_at="2006-03-21T20:50:00Z",
        metrics=TweetMetrics(comments=1, retweets=2, quotes=3, likes=4, views=5),
    )


def test_document_with_profile_and_stats() -> None:
    document = XDataDocument(
        profile=Profile(
            username="jack",
            name="jack",
            bio="just setting up my twttr",
            profile_link="https://n.example/jack",
            registration_date="12:50 PM - 21 Mar 2006",
        ),
        stats=ProfileStats(tweets=10, following=2, followers=3, likes=4),
        tweets=(_tweet(1),),
    )

    payload = document_to_dict(document)

    assert payload["profile"] == {
        "username": "jack",
        "name": "jack",
        "profile_link": "https://n.example/jack",
        "registration_date": "12:50 PM - 21 Mar 2006",
        "bio": "just setting up my twttr",
    }
    assert payload["stats"] == {"tweets": 10, "following": 2, "followers": 3, "likes": 4}
    assert payload["tweets"][0] == {
        "author": {"username": "jack", "verification": "blue", "name": "jack"},
        "content": "hello",
        "url": "https://n.example/jack/status/1",
        "created_at": "2006-03-21T20:50:00Z",
        "metrics": {"comments": 1, "retweets": 2, "quotes": 3, "likes": 4, "views": 5},
        "kind": "tweet",
    }


def test_missing_profile_and_stats_render_as_null() -> None:
    payload = document_to_dict(XDataDocument())
    assert payload == {"profile": None, "stats": None, "tweets": []}


def test_retweet_and_quote_carry_child_tweet() -> None:
    original = _tweet(7, BOB, "original words")
    retweet = Retweet(
        author=JACK,
        url=original.url,
        created_at=original.created_at,
        original=original,
        content=original.content,
    )
    quote = QuoteTweet(
        author=JACK,
        content="look at this",
        url="https://n.example/jack/status/8",
        created_at="",
        quoted=_tweet(9, BOB, "quoted words"),
    )

    retweet_data, quote_data = document_to_dict(XDataDocument(tweets=(retweet, quote)))["tweets"]

    assert retweet_data["kind"] == "retweet"
    assert retweet_data["content"] == "original words"
    assert retweet_data["child"]["kind"] == "tweet"
    assert retweet_data["child"]["author"] == {"username": "bob"}
    assert quote_data["kind"] == "quote"
    assert quote_data["child"]["content"] == "quoted words"
    assert "child" not in document_to_dict(XDataDocument(tweets=(original,)))["tweets"][0]


def test_render_json_keeps_unicode() -> None:
    text = render_json(XDataDocument(tweets=(_tweet(1, content="héllo · 世界"),)))
    assert "héllo · 世界" in text
    assert json.loads(text)["tweets"][0]["content"] == "héllo · 世界"
