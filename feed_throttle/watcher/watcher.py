"""
Watch a feed container for new items and join them with stored state.

Usage:
    def hide_everything(event: ItemEvent) -> None:
        (event.wrapper or event.item).extract()

    watcher = ChangeWatcher(container, mutations, hide_everything, get_context)
    watcher.start()
    ...
    watcher.stop()

The context is pulled through ``context_getter`` once per batch rather
than captured at start, because sources and feed states are replaced
asynchronously whenever another context writes them.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from urllib.parse import urljoin

from bs4 import PageElement, Tag

from feed_throttle.feeds.schemas import FeedState
from feed_throttle.observability.metrics import get_metrics
from feed_throttle.sources.identity import resolve_from_url
from feed_throttle.sources.schemas import Identity, Source
from feed_throttle.watcher.config import WatcherConfig
from feed_throttle.watcher.mutations import MutationFeed, StopHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchContext:
    """Snapshot of what the watcher joins items against.

    Attributes:
        sources: Current Source collection
        feed_states: Current FeedState collection
        current_source: Set when the page shows a single source only, in
            which case there is nothing to throttle
    """

    sources: Sequence[Source] = field(default_factory=list)
    feed_states: Sequence[FeedState] = field(default_factory=list)
    current_source: Identity | None = None


@dataclass(frozen=True, eq=False)
class ItemEvent:
    """A feed item matched with its source and feed state."""

    item: Tag
    wrapper: Tag | None
    source: Source
    feed_state: FeedState


ItemCallback = Callable[[ItemEvent], None]
ContextGetter = Callable[[], WatchContext]


class ChangeWatcher:
    """Turns additions to a container into decision-ready item events."""

    def __init__(
        self,
        container: Tag,
        mutations: MutationFeed,
        on_item: ItemCallback,
        context_getter: ContextGetter,
        config: WatcherConfig | None = None,
    ) -> None:
        self._container = container
        self._mutations = mutations
        self._on_item = on_item
        self._context_getter = context_getter
        self._config = config or WatcherConfig()
        self._stop_mutations: StopHandle | None = None
        self._stopped = False

    @property
    def is_running(self) -> bool:
        return self._stop_mutations is not None and not self._stopped

    def start(self) -> None:
        """
        Emit events for items already present, then follow new additions.

        Only future additions are reported by the mutation feed, so the
        existing items go through the same path first, without wrappers.
        """
        if self._stopped or self._stop_mutations is not None:
            return

        items = self._container.select(self._config.item_selector)
        self._emit_all([(item, None) for item in items])
        if self._stopped:
            return

        self._stop_mutations = self._mutations.subscribe(self._on_batch)
        logger.debug("Watching container for new items (%d present)", len(items))

    def stop(self) -> None:
        """Stop watching for good. Safe to call more than once."""
        self._stopped = True
        if self._stop_mutations is not None:
            self._stop_mutations()

    def _on_batch(self, added: Sequence[PageElement]) -> None:
        if self._stopped:
            return

        pairs = []
        for node in added:
            if not isinstance(node, Tag) or node.name != self._config.wrapper_tag:
                continue
            item = node.select_one(self._config.item_selector)
            if item is not None:
                pairs.append((item, node))

        self._emit_all(pairs)

    def _emit_all(self, pairs: Sequence[tuple[Tag, Tag | None]]) -> None:
        if not pairs:
            return

        context = self._context_getter()
        # A single-source view shows nothing to choose between
        if context.current_source is not None:
            return

        for item, wrapper in pairs:
            if self._stopped:
                return
            event = self._build_event(item, wrapper, context)
            if event is None:
                get_metrics().record_ignored_item()
                continue
            try:
                self._on_item(event)
            except Exception:
                logger.exception("Item callback failed for %s", event.source.display_name)

    def _source_identity(self, item: Tag) -> Identity | None:
        anchor = item.select_one(self._config.anchor_selector)
        if anchor is None:
            return None
        href = anchor.get("href")
        if not href:
            return None
        return resolve_from_url(urljoin(self._config.base_url, href))

    def _build_event(
        self, item: Tag, wrapper: Tag | None, context: WatchContext
    ) -> ItemEvent | None:
        identity = self._source_identity(item)
        if identity is None:
            return None

        source = next((s for s in context.sources if s.id == identity.id), None)
        if source is None or not source.internal_id:
            return None

        feed_state = next(
            (f for f in context.feed_states if f.internal_id == source.internal_id),
            None,
        )
        if feed_state is None:
            return None

        return ItemEvent(item=item, wrapper=wrapper, source=source, feed_state=feed_state)
