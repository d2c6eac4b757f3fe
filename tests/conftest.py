"""Pytest fixtures for feed-throttle tests."""

import pytest
from bs4 import BeautifulSoup

from feed_throttle.config.settings import Settings
from feed_throttle.feeds.schemas import FeedConfig, FeedState, FeedStats
from feed_throttle.sources.identity import resolve_from_name
from feed_throttle.sources.schemas import Source
from feed_throttle.storage.kv import InMemoryKeyValueStore


def _source(name: str, internal_id: str, is_subscribed: bool = True) -> Source:
    """Build a stored source from a name such as ``"r/Python"``."""
    return Source.from_identity(
        resolve_from_name(name), internal_id=internal_id, is_subscribed=is_subscribed
    )


def _feed(
    internal_id: str, frequency: float = 1.0, total: int = 0, skips: int = 0
) -> FeedState:
    return FeedState(
        internal_id=internal_id,
        config=FeedConfig(frequency=frequency),
        stats=FeedStats(total=total, skips=skips),
    )


def _post_html(name: str, title: str = "A post") -> str:
    """Markup of one feed item linking to its source."""
    return (
        f'<div class="Post"><a data-click-id="subreddit" href="/{name}/">{name}</a>'
        f"<h3>{title}</h3></div>"
    )


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="development",
        log_level="DEBUG",
        redis_url="redis://localhost:6379/1",  # Use DB 1 for tests
    )


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    """Empty in-process store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def sample_sources() -> list[Source]:
    """Two stored sources, both subscribed."""
    return [_source("r/Python", "1"), _source("r/AskReddit", "2")]


@pytest.fixture
def sample_feeds() -> list[FeedState]:
    """Feed states matching ``sample_sources``."""
    return [_feed("1", frequency=0.5, total=4, skips=1), _feed("2")]


@pytest.fixture
def desktop_page() -> BeautifulSoup:
    """A front page with the desktop source menu and a feed of four items."""
    html = (
        "<html><body>"
        '<header><div role="menu">'
        '<input id="header-subreddit-filter"/>'
        '<a href="/r/Python/"><img src="https://icons.example/python.png"/>r/Python</a>'
        '<a href="/r/AskReddit/">r/AskReddit</a>'
        '<a href="/r/all/">r/all</a>'
        "</div></header>"
        '<div class="ListingLayout-outerContainer">'
        + _post_html("r/Python", "first")
        + _post_html("r/Python", "second")
        + _post_html("r/AskReddit", "third")
        + _post_html("r/Python", "fourth")
        + "</div></body></html>"
    )
    return BeautifulSoup(html, "html.parser")


@pytest.fixture
def mobile_page() -> BeautifulSoup:
    """A page with the mobile overlay menu only."""
    html = (
        "<html><body>"
        '<nav class="OverlayMenu"><ul>'
        '<li><a href="/settings">Settings</a></li>'
        '<li><a href="/r/Python/">r/Python</a></li>'
        '<li><a href="/r/rust/">/r/rust</a></li>'
        "</ul></nav>"
        "</body></html>"
    )
    return BeautifulSoup(html, "html.parser")
