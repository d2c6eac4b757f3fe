"""Settings context: lists sources with their feeds and edits frequencies."""

import logging

from feed_throttle.feeds.reconcile import (
    SourceFeed,
    join_sources_with_feeds,
    search_sources,
    update_feed_state,
)
from feed_throttle.feeds.schemas import FeedState, clamp_frequency
from feed_throttle.storage.kv import KeyValueStore
from feed_throttle.sync.synchronizer import Synchronizer

logger = logging.getLogger(__name__)


class SettingsContext:
    """Backs the settings UI."""

    def __init__(self, store: KeyValueStore) -> None:
        self.sync = Synchronizer(store, name="settings")
        self.is_loading = True

    async def start(self) -> None:
        await self.sync.load()
        self.sync.start()
        self.is_loading = False

    def stop(self) -> None:
        self.sync.stop()

    def rows(self, query: str = "", subscribed_only: bool = False) -> list[SourceFeed]:
        """Sources sorted by name with their feeds, filtered by a search query."""
        sources = self.sync.state.sources
        if subscribed_only:
            sources = [s for s in sources if s.is_subscribed]
        return search_sources(
            join_sources_with_feeds(sources, self.sync.state.feed_states), query
        )

    async def update_frequency(self, internal_id: str, frequency: float) -> list[FeedState]:
        """Set the target show fraction of one source and persist it.

        Unknown ids are a no-op: the source may have just been removed.
        """
        frequency = clamp_frequency(frequency)
        feeds = await self.sync.update_feed_states(
            lambda current: update_feed_state(current, internal_id, frequency=frequency)
        )
        logger.info("Set frequency of feed %s to %.2f", internal_id, frequency)
        return feeds
