"""Builders for rendered Nitter markup and a scripted page that serves it."""

from __future__ import annotations

from dataclasses import dataclass, field

from bs4 import BeautifulSoup


def profile_card(
    username: str = "jack",
    *,
    fullname: str = "jack",
    verified: str | None = "blue",
    bio: str = "just setting up my twttr",
    website: str = "https://jack.example",
    stats: tuple[str, str, str, str] = ("29,481", "4,512", "6,390,113", "35,210"),
) -> str:
    icon = f'<div class="verified-icon {verified}"></div>' if verified else ""
    tweets, following, followers, likes = stats
    return f"""
<div class="profile-banner">
  <a href="/pic/banner.jpg" style="background-image: url('/pic/banner.jpg')"></a>
</div>
<div class="profile-card">
  <a class="profile-card-avatar" href="/pic/avatar.jpg"><img src="/pic/avatar.jpg" alt=""></a>
  <div class="profile-card-tabs-name">
    <a class="profile-card-fullname" href="/{username}" title="{fullname}">{fullname}{icon}</a>
    <a class="profile-card-username" href="/{username}" title="@{username}">@{username}</a>
  </div>
  <div class="profile-card-extra">
    <div class="profile-bio"><p>{bio}</p></div>
    <div class="profile-website"><span><a href="{website}">{website}</a></span></div>
    <div class="profile-joindate"><span title="12:50 PM - 21 Mar 2006">Joined March 2006</span></div>
  </div>
  <div class="profile-card-extra-links">
    <ul class="profile-statlist">
      <li class="posts"><span class="profile-stat-header">Tweets</span><span class="profile-stat-num">{tweets}</span></li>
      <li class="following"><span class="profile-stat-header">Following</span><span class="profile-stat-num">{following}</span></li>
      <li class="followers"><span class="profile-stat-header">Followers</span><span class="profile-stat-num">{followers}</span></li>
      <li class="likes"><span class="profile-stat-header">Likes</span><span class="profile-stat-num">{likes}</span></li>
    </ul>
  </div>
</div>
"""


def tweet_item(
    status_id: int | str,
    *,
    username: str = "jack",
    fullname: str | None = None,
    content: str | None = None,
    retweet: bool = False,
    quote: str | None = None,
    stats: tuple[str, str, str, str, str] = ("12", "3", "1", "1,024", "56,789"),
    views_icon: str = "icon-view",
) -> str:
    fullname = fullname or username
    content = content if content is not None else f"post {status_id} from {username}"
    comments, retweets, quotes, likes, views = stats
    retweet_header = (
        '<div class="retweet-header"><span><div class="icon-container">'
        '<span class="icon-retweet"></span> jack retweeted</div></span></div>'
        if retweet
        else ""
    )
    return f"""
<div class="timeline-item" data-username="{username}">
  <a class="tweet-link" href="/{username}/status/{status_id}#m"></a>
  <div class="tweet-body">
    <div>{retweet_header}
      <div class="tweet-header">
        <a class="tweet-avatar" href="/{username}"><img class="avatar round" src="/pic/{username}.jpg" alt=""></a>
        <div class="tweet-name-row">
          <div class="fullname-and-username">
            <a class="fullname" href="/{username}" title="{fullname}">{fullname}</a>
            <a class="username" href="/{username}" title="@{username}">@{username}</a>
          </div>
          <span class="tweet-date"><a href="/{username}/status/{status_id}#m" title="Mar 21, 2006 · 8:50 PM UTC">Mar 21, 2006</a></span>
        </div>
      </div>
    </div>
    <div class="tweet-content media-body" dir="auto">{content}</div>
    {quote or ""}
    <div class="tweet-stats">
      <span class="tweet-stat"><div class="icon-container"><span class="icon-comment" title=""></span> {comments}</div></span>
      <span class="tweet-stat"><div class="icon-container"><span class="icon-retweet" title=""></span> {retweets}</div></span>
      <span class="tweet-stat"><div class="icon-container"><span class="icon-quote" title=""></span> {quotes}</div></span>
      <span class="tweet-stat"><div class="icon-container"><span class="icon-heart" title=""></span> {likes}</div></span>
      <span class="tweet-stat"><div class="icon-container"><span class="{views_icon}" title=""></span> {views}</div></span>
    </div>
  </div>
</div>
"""


def quote_card(status_id: int | str, *, username: str = "bob", text: str = "quoted words") -> str:
    return f"""
<div class="quote quote-big">
  <a class="quote-link" href="/{username}/status/{status_id}#m"></a>
  <div class="tweet-name-row">
    <div class="fullname-and-username">
      <a class="fullname" href="/{username}" title="Bob">Bob<div class="verified-icon business"></div></a>
      <a class="username" href="/{username}" title="@{username}">@{username}</a>
    </div>
  </div>
  <div class="quote-text" dir="auto">{text}</div>
</div>
"""


def timeline_page(
    items: list[str],
    *,
    username: str = "jack",
    with_profile: bool = True,
    more_href: str | None = None,
    show_more: bool = True,
) -> str:
    more = ""
    if show_more:
        link = f'<a href="{more_href}">Load more</a>' if more_href is not None else ""
        more = f'<div class="show-more">{link}</div>'
    profile = profile_card(username) if with_profile else ""
    return f"""<!DOCTYPE html>
<html><head><title>{username} | nitter</title></head>
<body>
  <div class="container">
    {profile}
    <div class="timeline">
      {"".join(items)}
      {more}
    </div>
  </div>
</body></html>
"""


def tweets(start: int, stop: int, **kwargs) -> list[str]:
    return [tweet_item(status_id, **kwargs) for status_id in range(start, stop)]


def error_page(message: str) -> str:
    return f"""<!DOCTYPE html>
<html><head><title>Error | nitter</title></head>
<body><div class="error-panel"><span>{message}</span></div></body></html>
"""


@dataclass
class Resp:
    html: str = ""
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)


class FakeRequest:
    resource_type = "document"


class FakeResponse:
    def __init__(self, status: int, headers: dict[str, str]) -> None:
        self.status = status
        self.headers = headers
        self.request = FakeRequest()


class FakeTimelinePage:
    """Serves canned responses per URL; a list is consumed one entry per visit."""

    def __init__(self, routes: dict[str, object]) -> None:
        self.routes = routes
        self.visits: list[str] = []
        self.listeners: dict[str, list] = {}
        self._url = "about:blank"
        self._html = ""
        self.closed = False

    @property
    def url(self) -> str:
        return self._url

    async def goto(self, url: str, **kwargs) -> None:
        self.visits.append(url)
        entry = self.routes[url]
        if isinstance(entry, list):
            entry = entry.pop(0) if len(entry) > 1 else entry[0]
        if isinstance(entry, Exception):
            raise entry
        self._url = url
        self._html = entry.html
        for handler in list(self.listeners.get("response", [])):
            handler(FakeResponse(entry.status, entry.headers))

    async def wait_for_selector(self, selector: str, **kwargs) -> None:
        if BeautifulSoup(self._html, "html.parser").select_one(selector) is None:
            raise TimeoutError(f"Timeout {kwargs.get('timeout')}ms exceeded waiting for {selector}")

    async def content(self) -> str:
        return self._html

    async def title(self) -> str:
        node = BeautifulSoup(self._html, "html.parser").title
        return node.get_text() if node is not None else ""

    def on(self, event: str, handler) -> None:
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler) -> None:
        self.listeners[event].remove(handler)

    async def close(self) -> None:
        self.closed = True




def paged_routes(start_url: str, total: int, per_page: int) -> dict[str, object]:
    """Routes for ``total`` tweets split over cursor-linked pages of ``per_page``."""
    routes: dict[str, object] = {}
    pages = (total + per_page - 1) // per_page
    for index in range(pages):
        url = start_url if index == 0 else f"{start_url}?cursor=c{index}"
        start = index * per_page
        stop = min(total, start + per_page)
        more = f"?cursor=c{index + 1}" if index + 1 < pages else None
        routes[url] = Resp(
            timeline_page(tweets(start, stop), more_href=more, show_more=more is not None)
        )
    return routes
