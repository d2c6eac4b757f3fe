"""
Reconciliation of the FeedState collection with the Source collection.

The two collections are written independently by different contexts,
so either may briefly reference records the other lacks. These pure
functions repair that: every source gets a feed state, and nothing is
ever dropped.
"""

from collections.abc import Sequence
from dataclasses import dataclass, replace

from feed_throttle.feeds.schemas import (
    FeedConfig,
    FeedState,
    FeedStats,
    create_feed_state,
)
from feed_throttle.sources.merge import parse_internal_id
from feed_throttle.sources.schemas import Source


@dataclass(frozen=True)
class SourceFeed:
    """A source colocated with its feed state."""

    source: Source
    feed: FeedState


def _internal_id_sort_key(internal_id: str) -> tuple[int, int, str]:
    value = parse_internal_id(internal_id)
    if value is None:
        return (1, 0, internal_id)
    return (0, value, internal_id)


def sort_feed_states(feeds: Sequence[FeedState]) -> list[FeedState]:
    """Sort ascending by internal id: numeric ids by value, then the rest."""
    return sorted(feeds, key=lambda feed: _internal_id_sort_key(feed.internal_id))


def reconcile_feed_states(
    existing_feeds: Sequence[FeedState], current_sources: Sequence[Source]
) -> list[FeedState]:
    """
    Ensure every source has a feed state without dropping any.

    Feed states whose source is missing are kept: the source list may be
    the stale side of the two.

    Args:
        existing_feeds: Feed states as currently stored
        current_sources: Sources as currently stored

    Returns:
        Union of existing feed states and defaults for sources lacking
        one, unique by internal id (existing wins), sorted by internal id
    """
    merged: dict[str, FeedState] = {}
    for feed in existing_feeds:
        merged.setdefault(feed.internal_id, feed)

    for source in current_sources:
        if source.internal_id not in merged:
            merged[source.internal_id] = create_feed_state(source.internal_id)

    return sort_feed_states(list(merged.values()))


def update_feed_state(
    feeds: list[FeedState],
    internal_id: str,
    frequency: float | None = None,
    skips: int | None = None,
    total: int | None = None,
) -> list[FeedState]:
    """
    Compute the next feed state collection given the changes.

    Unknown ``internal_id`` returns ``feeds`` itself: the source may have
    been removed by another context while this update was in flight.
    """
    if not any(feed.internal_id == internal_id for feed in feeds):
        return feeds

    updated = []
    for feed in feeds:
        if feed.internal_id != internal_id:
            updated.append(feed)
            continue

        updated.append(
            replace(
                feed,
                config=FeedConfig(
                    frequency=feed.config.frequency if frequency is None else frequency
                ),
                stats=FeedStats(
                    total=feed.stats.total if total is None else total,
                    skips=feed.stats.skips if skips is None else skips,
                ),
            )
        )
    return updated


def join_sources_with_feeds(
    sources: Sequence[Source], feeds: Sequence[FeedState]
) -> list[SourceFeed]:
    """Pair sources (sorted by display name) with their feed states.

    Sources without a feed state are left out until reconciliation
    creates one.
    """
    feeds_by_id = {feed.internal_id: feed for feed in feeds}
    rows = []
    for source in sorted(sources, key=lambda s: s.display_name):
        feed = feeds_by_id.get(source.internal_id)
        if feed is not None:
            rows.append(SourceFeed(source=source, feed=feed))
    return rows


def search_sources(rows: Sequence[SourceFeed], query: str) -> list[SourceFeed]:
    """Case-insensitive substring search on display names, whitespace ignored."""
    needle = "".join(query.split()).lower()
    if not needle:
        return list(rows)
    return [row for row in rows if needle in row.source.display_name.lower()]
