"""
Background coordinator context.

Owns the Source collection: merges discovered sources reported by the
page, and keeps the FeedState collection reconciled with the sources
whichever context wrote last. Its message endpoint relays messages it
does not handle, since the page and settings contexts cannot reach each
other directly.
"""

import logging

from feed_throttle.errors import CodecError
from feed_throttle.feeds.codec import decode_feed_states
from feed_throttle.feeds.reconcile import reconcile_feed_states
from feed_throttle.feeds.schemas import FeedState
from feed_throttle.messaging.bus import MessageEndpoint, StopHandle
from feed_throttle.messaging.schemas import Message, MessageType
from feed_throttle.observability.metrics import get_metrics
from feed_throttle.sources.codec import decode_sources
from feed_throttle.sources.merge import merge_sources
from feed_throttle.sources.schemas import Identity, Source
from feed_throttle.storage.kv import KeyValueStore, StorageKey
from feed_throttle.sync.synchronizer import Synchronizer

logger = logging.getLogger(__name__)


class CoordinatorContext:
    """Merges sources and reconciles feed states on every write."""

    def __init__(self, store: KeyValueStore, endpoint: MessageEndpoint) -> None:
        self.sync = Synchronizer(store, name="coordinator")
        self._endpoint = endpoint
        self._stop_receive: StopHandle | None = None
        self.badge_text = ""

    async def start(self) -> None:
        """Load state, follow store changes and start receiving messages."""
        await self.sync.load()
        self._update_badge(self.sync.state.feed_states)

        self.sync.on_sources(self._on_sources_changed)
        self.sync.on_feed_states(self._on_feed_states_changed)
        self.sync.start()

        self._stop_receive = self._endpoint.receive(
            {MessageType.DID_OBTAIN_SOURCES: self._on_did_obtain_sources},
            broadcast_unhandled=True,
        )
        logger.info("Coordinator started (%d sources)", len(self.sync.state.sources))

    def stop(self) -> None:
        self.sync.stop()
        if self._stop_receive is not None:
            self._stop_receive()
            self._stop_receive = None

    async def _on_did_obtain_sources(self, message: Message, sender: str) -> int:
        """Merge the sources the page discovered into the stored ones."""
        payload = message.payload or {}
        discovered: list[Identity] = list(payload.get("sources", []))

        stored = await self.sync.store.get({StorageKey.SOURCES.value: ""})
        # A corrupted list is not overwritten; the error goes back to the sender
        existing = decode_sources(stored[StorageKey.SOURCES.value])

        merged = merge_sources(discovered, existing)
        await self.sync.write_sources(merged)

        logger.info(
            "Stored %d sources from %s (%d discovered)",
            len(merged), sender, len(discovered),
        )
        return len(merged)

    async def _on_sources_changed(self, sources: list[Source]) -> None:
        """Give every source a feed state, reading feed states fresh."""
        stored = await self.sync.store.get({StorageKey.FEED_STATES.value: ""})
        try:
            feeds = decode_feed_states(stored[StorageKey.FEED_STATES.value])
        except CodecError as e:
            logger.warning("Reconciling against cached feed states: %s", e)
            feeds = self.sync.state.feed_states

        await self._reconcile(sources, feeds)

    async def _on_feed_states_changed(self, feeds: list[FeedState]) -> None:
        self._update_badge(feeds)
        # A writer holding a stale source list may have dropped new feeds
        await self._reconcile(self.sync.state.sources, feeds)

    async def _reconcile(self, sources: list[Source], feeds: list[FeedState]) -> None:
        reconciled = reconcile_feed_states(feeds, sources)
        if reconciled == feeds:
            return

        logger.debug(
            "Reconciled feed states: %d -> %d", len(feeds), len(reconciled)
        )
        await self.sync.write_feed_states(reconciled)

    def _update_badge(self, feeds: list[FeedState]) -> None:
        self.badge_text = str(len(feeds))
        get_metrics().set_tracked_feeds(len(feeds))
