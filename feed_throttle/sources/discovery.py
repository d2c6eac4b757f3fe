"""
Discovery of the user's subscribed sources from the page.

The source list only appears in the document once the user opens the
source menu, so discovery polls the document at a fixed interval until
at least one link resolves to a source. Desktop and mobile layouts keep
the list in different places; both are checked on every attempt.
"""

import asyncio
import logging
import re
from collections.abc import Callable, Iterable
from typing import TypeVar
from urllib.parse import urljoin

from bs4 import Tag

from feed_throttle.errors import DiscoveryTimeoutError
from feed_throttle.sources.config import DiscoveryConfig
from feed_throttle.sources.identity import resolve_from_url
from feed_throttle.sources.schemas import DiscoveredSource

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SOURCE_PREFIX_TEXT = re.compile(r"^/?r/")


def _desktop_source_links(document: Tag, config: DiscoveryConfig) -> list[Tag]:
    menu_filter = document.select_one(config.desktop_menu_filter_selector)
    if menu_filter is None:
        return []

    menu = next(
        (
            parent
            for parent in menu_filter.parents
            if isinstance(parent, Tag) and parent.get("role") == "menu"
        ),
        None,
    )
    if menu is None:
        return []
    return menu.select(config.desktop_link_selector)


def _mobile_source_links(document: Tag, config: DiscoveryConfig) -> list[Tag]:
    # The overlay menu mixes sources with other links; keep only "r/..." entries
    return [
        link
        for link in document.select(config.mobile_link_selector)
        if _SOURCE_PREFIX_TEXT.match(link.get_text(strip=True))
    ]


def find_source_links(document: Tag, config: DiscoveryConfig | None = None) -> list[Tag]:
    """Find the links of the user's source list, desktop layout first."""
    config = config or DiscoveryConfig()
    return _desktop_source_links(document, config) or _mobile_source_links(document, config)


def parse_source_link(link: Tag, base_url: str) -> DiscoveredSource | None:
    """Resolve a source link element, or None if it names no source."""
    href = link.get("href")
    if not href:
        return None

    identity = resolve_from_url(urljoin(base_url, href))
    if identity is None:
        return None

    icon = link.find("img")
    return DiscoveredSource(
        id=identity.id,
        display_name=identity.display_name,
        url=identity.url,
        has_icon=icon is not None,
        icon_url=icon.get("src") if icon is not None else None,
    )


async def discover_sources(
    query: Callable[[], Iterable[Tag]],
    config: DiscoveryConfig | None = None,
) -> list[DiscoveredSource]:
    """
    Poll for the user's sources until at least one resolves.

    Args:
        query: Returns the candidate link elements currently in the
            document, e.g. ``lambda: find_source_links(soup)``
        config: Poll interval, timeout and base URL

    Returns:
        Resolved sources in document order

    Raises:
        DiscoveryTimeoutError: If the timeout elapses first. Time is
            counted in whole intervals, one per unsuccessful attempt.
    """
    config = config or DiscoveryConfig()
    interval = config.interval_seconds
    timeout = config.timeout_seconds
    attempts = 0

    while True:
        attempts += 1
        sources = [
            source
            for source in (parse_source_link(link, config.base_url) for link in query())
            if source is not None
        ]
        if sources:
            logger.debug(
                "Parsed %d source(s) from the document after %d attempt(s)",
                len(sources),
                attempts,
            )
            return sources

        if timeout is not None and attempts * interval >= timeout:
            raise DiscoveryTimeoutError(
                timeout_ms=round(timeout * 1000),
                interval_ms=round(interval * 1000),
                attempts_made=attempts,
            )

        await asyncio.sleep(interval)


async def wait_for_element(query: Callable[[], T | None], interval: float = 0.05) -> T:
    """Call ``query`` every ``interval`` seconds until it returns an element."""
    while True:
        element = query()
        if element is not None:
            return element
        await asyncio.sleep(interval)
