"""Feeds: per-source config and stats, the decision engine and reconciliation."""

from feed_throttle.feeds.codec import decode_feed_states, encode_feed_states
from feed_throttle.feeds.engine import apply_outcome, decide, shown_ratio
from feed_throttle.feeds.reconcile import (
    SourceFeed,
    join_sources_with_feeds,
    reconcile_feed_states,
    search_sources,
    update_feed_state,
)
from feed_throttle.feeds.schemas import (
    FeedConfig,
    FeedState,
    FeedStats,
    create_feed_state,
)

__all__ = [
    "FeedConfig",
    "FeedState",
    "FeedStats",
    "SourceFeed",
    "apply_outcome",
    "create_feed_state",
    "decide",
    "decode_feed_states",
    "encode_feed_states",
    "join_sources_with_feeds",
    "reconcile_feed_states",
    "search_sources",
    "shown_ratio",
    "update_feed_state",
]
