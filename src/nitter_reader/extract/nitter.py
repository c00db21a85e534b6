"""BeautifulSoup parser for rendered Nitter profile timelines."""

from __future__ import annotations

from collections.abc import Mapping
import logging
import re
from typing import Any
from urllib.parse import parse_qs, urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup, Tag

from nitter_reader.models import (
    Author,
    PageData,
    PageInfo,
    Profile,
    ProfileStats,
    QuoteTweet,
    Retweet,
    TimelineItem,
    Tweet,
    TweetMetrics,
    Verification,
)

from .selectors import STAT_ICONS, VIEWS_FALLBACK_ICON, SelectorPack, resolve_selector_pack

logger = logging.getLogger(__name__)

_NON_DIGIT_RE = re.compile(r"[^0-9]")
_BANNER_URL_RE = re.compile(r"url\(([^)]+)\)")


def absolute_url(url: str | None, base_url: str | None) -> str | None:
    if not url:
        return None
    if not base_url:
        return url
    try:
        return urljoin(base_url, url)
    except ValueError:
        return None


def canonical_tweet_url(url: str | None, base_url: str | None) -> str:
    """Absolute status URL without query string or fragment (``#m`` on Nitter)."""
    resolved = absolute_url(url, base_url)
    if not resolved:
        return ""
    parsed = urlparse(resolved)
    return urlunparse(parsed._replace(query="", fragment=""))


def extract_number(text: str | None) -> int:
    digits = _NON_DIGIT_RE.sub("", text or "")
    return int(digits) if digits else 0


def extract_cursor(href: str | None) -> str | None:
    """Return the ``cursor`` query value of a pagination link, if any."""
    if not href or "cursor=" not in href:
        return None
    values = parse_qs(urlparse(href).query).get("cursor")
    if not values or not values[0]:
        return None
    return values[0]


class NitterPageExtractor:
    """Turn one rendered Nitter page into a ``PageData``.

    ``owner`` supplies the retweeting author when the page itself carries no
    profile card.
    """

    def __init__(self, *, selector_overrides: Mapping[str, Any] | None = None) -> None:
        resolution = resolve_selector_pack(selector_overrides)
        for warning in resolution.warnings:
            logger.warning("selector_override_ignored detail=%s", warning)
        self._selectors: SelectorPack = resolution.selectors

    @property
    def selectors(self) -> SelectorPack:
        return dict(self._selectors)

    def parse(
        self,
        html: str,
        base_url: str | None = None,
        *,
        owner: Profile | None = None,
    ) -> PageData:
        soup = BeautifulSoup(html or "", "html.parser")
        profile = self.parse_profile(soup, base_url)
        stats = self.parse_stats(soup)
        owner_profile = profile or owner
        items = self.parse_items(soup, owner_profile, base_url)
        page_info = self.parse_page_info(soup)
        has_content = bool(
            soup.select_one(self._selectors["timeline.item"])
            or soup.select_one(self._selectors["profile.username"])
        )
        return PageData(
            profile=profile,
            stats=stats,
            items=tuple(items),
            page_info=page_info,
            has_content=has_content,
        )

    def parse_profile(self, soup: BeautifulSoup, base_url: str | None) -> Profile | None:
        s = self._selectors
        username = _text(soup.select_one(s["profile.username"])).lstrip("@")
        if not username:
            return None

        cover_photo_url = None
        banner = soup.select_one(s["profile.banner"])
        if banner is not None:
            match = _BANNER_URL_RE.search(str(banner.get("style") or ""))
            if match:
                cover_photo_url = absolute_url(match.group(1).strip("'\""), base_url)

        fullname = soup.select_one(s["profile.fullname"])
        joindate_title = soup.select_one(s["profile.joindate_title"])
        registration_date = (
            str(joindate_title.get("title") or "")
            if joindate_title is not None
            else ""
        ) or _text(soup.select_one(s["profile.joindate"]))

        return Profile(
            username=username,
            verification=self._verification(fullname),
            name=_text(fullname) or None,
            profile_photo_url=absolute_url(_attr(soup.select_one(s["profile.avatar"]), "src"), base_url),
            bio=_text(soup.select_one(s["profile.bio"])) or None,
            profile_link=_attr(soup.select_one(s["profile.website"]), "href") or "",
            cover_photo_url=cover_photo_url,
            registration_date=registration_date,
        )

    def parse_stats(self, soup: BeautifulSoup) -> ProfileStats | None:
        s = self._selectors
        nodes = {
            key: soup.select_one(s[f"stats.{key}"])
            for key in ("tweets", "following", "followers", "likes")
        }
        if all(node is None for node in nodes.values()):
            return None
        return ProfileStats(**{key: extract_number(_text(node)) for key, node in nodes.items()})

    def parse_items(
        self,
        soup: BeautifulSoup,
        owner: Profile | None,
        base_url: str | None,
    ) -> list[TimelineItem]:
        s = self._selectors
        items: list[TimelineItem] = []
        for node in soup.select(s["timeline.item"]):
            if "show-more" in (node.get("class") or []):
                continue
            item = self._parse_item(node, owner, base_url)
            if item is not None:
                items.append(item)
        return items

    def parse_page_info(self, soup: BeautifulSoup) -> PageInfo:
        s = self._selectors
        show_more_nodes = soup.select(s["timeline.show_more"])
        show_more = show_more_nodes[-1] if show_more_nodes else None
        link = show_more.select_one("a") if show_more is not None else None
        href = _attr(link, "href")
        return PageInfo(
            has_show_more=show_more is not None,
            has_link=link is not None,
            link_href=href or None,
            item_count=len(soup.select(s["timeline.item"])),
        )

    def _parse_item(
        self, node: Tag, owner: Profile | None, base_url: str | None
    ) -> TimelineItem | None:
        s = self._selectors
        body = node.select_one(s["tweet.body"])
        if body is None:
            return None
        base = self._parse_base_tweet(node, body, base_url)
        if base is None:
            return None

        if body.select_one(s["tweet.retweet_header"]) is not None:
            author = owner.as_author() if owner is not None else None
            if author is None:
                logger.debug("retweet_without_owner url=%s", base.url)
                return None
            return Retweet(
                author=author,
                url=base.url,
                created_at=base.created_at,
                original=base,
                metrics=base.metrics,
                content=base.content,
            )

        quote_root = body.select_one(s["tweet.quote"])
        if quote_root is not None:
            return QuoteTweet(
                author=base.author,
                content=base.content,
                url=base.url,
                created_at=base.created_at,
                quoted=self._parse_quoted(quote_root, base, base_url),
                metrics=base.metrics,
            )
        return base

    def _parse_base_tweet(self, node: Tag, body: Tag, base_url: str | None) -> Tweet | None:
        s = self._selectors
        header = body.select_one(s["tweet.header"])
        stats_root = body.select_one(s["tweet.stats"])
        url = canonical_tweet_url(_attr(node.select_one(s["tweet.link"]), "href"), base_url)
        author = self._parse_author(header, base_url)
        if not url or not author.username:
            return None

        date_link = header.select_one(s["tweet.date"]) if header is not None else None
        created_at = _attr(date_link, "title") or _text(date_link)

        views = _stat_value(stats_root, STAT_ICONS["views"]) or _stat_value(
            stats_root, VIEWS_FALLBACK_ICON
        )
        return Tweet(
            author=author,
            content=_text(body.select_one(s["tweet.content"])),
            url=url,
            created_at=created_at,
            metrics=TweetMetrics(
                comments=_stat_value(stats_root, STAT_ICONS["comments"]),
                retweets=_stat_value(stats_root, STAT_ICONS["retweets"]),
                quotes=_stat_value(stats_root, STAT_ICONS["quotes"]),
                likes=_stat_value(stats_root, STAT_ICONS["likes"]),
                views=views,
            ),
        )

    def _parse_author(self, root: Tag | None, base_url: str | None) -> Author:
        s = self._selectors
        if root is None:
            return Author(username="")
        return Author(
            username=_text(root.select_one(s["tweet.username"])).lstrip("@"),
            verification=self._verification(root),
            name=_text(root.select_one(s["tweet.fullname"])) or None,
            profile_photo_url=absolute_url(_attr(root.select_one(s["tweet.avatar"]), "src"), base_url),
        )

    def _parse_quoted(self, quote_root: Tag, base: Tweet, base_url: str | None) -> Tweet:
        s = self._selectors
        quote_text = quote_root.select_one(".quote-text")
        content = _text(quote_text) if quote_text is not None else _text(quote_root)
        url = canonical_tweet_url(_attr(quote_root.select_one(s["tweet.quote_link"]), "href"), base_url)
        return Tweet(
            author=Author(
                username=_text(quote_root.select_one(s["tweet.username"])).lstrip("@"),
                verification=self._verification(quote_root),
                name=_text(quote_root.select_one(s["tweet.fullname"])) or None,
                profile_photo_url=absolute_url(_attr(quote_root.select_one("img"), "src"), base_url),
            ),
            content=content,
            url=url or base.url,
            created_at=base.created_at,
        )

    def _verification(self, root: Tag | None) -> Verification | None:
        if root is None:
            return None
        icon = root.select_one(self._selectors["verified.icon"])
        if icon is None:
            return None
        classes = " ".join(icon.get("class") or [])
        if "business" in classes:
            return Verification.BUSINESS
        if "blue" in classes:
            return Verification.BLUE
        return None


def _text(node: Tag | None) -> str:
    if node is None:
        return ""
    return node.get_text(" ", strip=True)


def _attr(node: Tag | None, name: str) -> str:
    if node is None:
        return ""
    value = node.get(name)
    if isinstance(value, list):
        return " ".join(value)
    return str(value or "")


def _stat_value(stats_root: Tag | None, icon_class: str) -> int:
    if stats_root is None:
        return 0
    icon = stats_root.select_one(f".{icon_class}")
    if icon is None:
        return 0
    stat = icon if "tweet-stat" in (icon.get("class") or []) else icon.find_parent(class_="tweet-stat")
    return extract_number(_text(stat))
