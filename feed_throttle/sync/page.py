"""
Page context: discovers the user's sources and throttles feed items.

On start the page loads the persisted state, reports the sources it can
find in the document to the coordinator, waits for the feed container
and starts the watcher. Each item event is decided against the freshest
cached feed state; skipped items are removed from the document and the
stat update is written back through the synchronizer.
"""

import asyncio
import logging
from collections.abc import Callable

from bs4 import Tag

from feed_throttle.errors import DiscoveryTimeoutError, MessageDeliveryError
from feed_throttle.feeds.engine import apply_outcome, decide
from feed_throttle.feeds.reconcile import update_feed_state
from feed_throttle.messaging.bus import MessageEndpoint
from feed_throttle.messaging.schemas import MessageType
from feed_throttle.observability.metrics import get_metrics
from feed_throttle.sources.config import DiscoveryConfig
from feed_throttle.sources.discovery import (
    discover_sources,
    find_source_links,
    wait_for_element,
)
from feed_throttle.sources.identity import resolve_from_url
from feed_throttle.storage.kv import KeyValueStore
from feed_throttle.sync.synchronizer import Synchronizer
from feed_throttle.watcher.config import WatcherConfig
from feed_throttle.watcher.mutations import MutationFeed
from feed_throttle.watcher.watcher import ChangeWatcher, ItemEvent, WatchContext

logger = logging.getLogger(__name__)


class PageContext:
    """The watcher side: decides which feed items to show."""

    def __init__(
        self,
        store: KeyValueStore,
        endpoint: MessageEndpoint,
        document: Tag,
        mutations: MutationFeed,
        location: Callable[[], str],
        watcher_config: WatcherConfig | None = None,
        discovery_config: DiscoveryConfig | None = None,
    ) -> None:
        """
        Args:
            store: Shared persistent store
            endpoint: This context's message endpoint
            document: Parsed page
            mutations: Host feed of nodes added to ``document``
            location: Returns the page's current URL
            watcher_config: Item/anchor selectors
            discovery_config: Source discovery polling
        """
        self.sync = Synchronizer(store, name="page")
        self._endpoint = endpoint
        self._document = document
        self._mutations = mutations
        self._location = location
        self._watcher_config = watcher_config or WatcherConfig()
        self._discovery_config = discovery_config or DiscoveryConfig()
        self._discovery_task: asyncio.Task | None = None
        self.watcher: ChangeWatcher | None = None

    async def start(self) -> None:
        """Load state, kick off discovery and watch the feed container."""
        await self.sync.load()
        self.sync.start()

        self._discovery_task = asyncio.create_task(
            self._report_sources(), name="source-discovery",
        )

        container = await wait_for_element(
            lambda: self._document.select_one(self._watcher_config.container_selector),
            interval=self._watcher_config.container_poll_interval_seconds,
        )
        self.watcher = ChangeWatcher(
            container,
            self._mutations,
            self._on_item,
            self.watch_context,
            self._watcher_config,
        )
        self.watcher.start()

    async def stop(self) -> None:
        if self.watcher is not None:
            self.watcher.stop()
        self.sync.stop()

        if self._discovery_task is not None:
            self._discovery_task.cancel()
            try:
                await self._discovery_task
            except asyncio.CancelledError:
                pass
            self._discovery_task = None

        await self.sync.flush()

    async def wait_for_discovery(self) -> None:
        """Wait until discovered sources were reported (or discovery gave up)."""
        if self._discovery_task is not None:
            await self._discovery_task

    def watch_context(self) -> WatchContext:
        """Current snapshot for the watcher, pulled once per batch."""
        return WatchContext(
            sources=self.sync.state.sources,
            feed_states=self.sync.state.feed_states,
            current_source=resolve_from_url(self._location()),
        )

    async def _report_sources(self) -> None:
        try:
            sources = await discover_sources(
                lambda: find_source_links(self._document, self._discovery_config),
                self._discovery_config,
            )
            await self._endpoint.send(MessageType.DID_OBTAIN_SOURCES, {"sources": sources})
        except DiscoveryTimeoutError as e:
            logger.warning("Source discovery gave up: %s", e)
        except MessageDeliveryError as e:
            logger.warning("Discovered sources were not stored: %s", e)

    def _on_item(self, event: ItemEvent) -> None:
        internal_id = event.source.internal_id
        # Earlier items of this batch may already have moved the counters
        feed = self.sync.state.feed_state(internal_id) or event.feed_state

        skip = decide(feed)
        get_metrics().record_decision(skip)
        if skip:
            (event.wrapper or event.item).extract()
            logger.debug("Skipped item from %s", event.source.display_name)

        updated = apply_outcome(feed, skip)
        self.sync.update_feed_states(
            lambda feeds: update_feed_state(
                feeds,
                internal_id,
                skips=updated.stats.skips,
                total=updated.stats.total,
            )
        )
