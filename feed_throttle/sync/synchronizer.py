"""
Per-context cache of the two collections, kept in step with the store.

Every context owns one ``Synchronizer``. Its ``ContextState`` is rebuilt
from the persisted copy whenever a change notification arrives, and is
handed by reference to whatever in the context needs it. Writes persist
full collections, so concurrent writers resolve as last-writer-wins;
divergence heals on the next reconciliation pass.
"""

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from feed_throttle.errors import CodecError
from feed_throttle.feeds.codec import decode_feed_states, encode_feed_states
from feed_throttle.feeds.schemas import FeedState
from feed_throttle.observability.metrics import get_metrics
from feed_throttle.sources.codec import decode_sources, encode_sources
from feed_throttle.sources.schemas import Source
from feed_throttle.storage.kv import KeyValueStore, StopHandle, StorageChange, StorageKey

logger = logging.getLogger(__name__)

SourcesListener = Callable[[list[Source]], object]
FeedStatesListener = Callable[[list[FeedState]], object]


@dataclass
class ContextState:
    """The collections as this context last persisted or received them."""

    sources: list[Source] = field(default_factory=list)
    feed_states: list[FeedState] = field(default_factory=list)

    def source_by_id(self, source_id: str) -> Source | None:
        return next((s for s in self.sources if s.id == source_id), None)

    def feed_state(self, internal_id: str) -> FeedState | None:
        return next((f for f in self.feed_states if f.internal_id == internal_id), None)


class Synchronizer:
    """Keeps a ContextState in step with the shared store.

    Lifecycle:
        1. ``await load()``: read both collections once
        2. ``start()``: follow change notifications
        3. ``stop()``: stop following (idempotent)
    """

    def __init__(self, store: KeyValueStore, name: str = "") -> None:
        self._store = store
        self.name = name
        self.state = ContextState()
        self._stop_watch: StopHandle | None = None
        self._sources_listeners: list[SourcesListener] = []
        self._feed_states_listeners: list[FeedStatesListener] = []
        self._pending_writes: set[asyncio.Task] = set()
        self._unacknowledged: deque[str] = deque(maxlen=64)

    @property
    def store(self) -> KeyValueStore:
        return self._store

    async def load(self) -> ContextState:
        """Replace the cache with the persisted collections.

        A collection that fails to decode leaves its cached copy as is.
        """
        stored = await self._store.get({
            StorageKey.SOURCES.value: "",
            StorageKey.FEED_STATES.value: "",
        })
        self._apply_sources(stored[StorageKey.SOURCES.value])
        self._apply_feed_states(stored[StorageKey.FEED_STATES.value])
        return self.state

    def start(self) -> None:
        """Follow change notifications for this store's area."""
        if self._stop_watch is None:
            self._stop_watch = self._store.watch(self._on_change)

    def stop(self) -> None:
        if self._stop_watch is not None:
            self._stop_watch()
            self._stop_watch = None

    def on_sources(self, listener: SourcesListener) -> None:
        """Call ``listener`` with every newly received Source collection."""
        self._sources_listeners.append(listener)

    def on_feed_states(self, listener: FeedStatesListener) -> None:
        """Call ``listener`` with every newly received FeedState collection."""
        self._feed_states_listeners.append(listener)

    async def _on_change(self, change: StorageChange) -> None:
        if change.area != self._store.area:
            return

        if change.key == StorageKey.SOURCES.value:
            if self._apply_sources(change.new_value):
                await self._notify(self._sources_listeners, self.state.sources)
        elif change.key == StorageKey.FEED_STATES.value:
            if self._is_superseded(change.new_value):
                return
            if self._apply_feed_states(change.new_value):
                await self._notify(self._feed_states_listeners, self.state.feed_states)

    async def _notify(self, listeners: list, collection: list) -> None:
        for listener in list(listeners):
            try:
                result = listener(collection)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("[%s] Collection listener failed", self.name)

    def _apply_sources(self, data: str | None) -> bool:
        try:
            self.state.sources = decode_sources(data)
        except CodecError as e:
            get_metrics().record_decode_failure(StorageKey.SOURCES.value)
            logger.warning(
                "[%s] Keeping previous sources, stored value failed to decode: %s (row %s)",
                self.name, e, e.row,
            )
            return False
        return True

    def _apply_feed_states(self, data: str | None) -> bool:
        try:
            self.state.feed_states = decode_feed_states(data)
        except CodecError as e:
            get_metrics().record_decode_failure(StorageKey.FEED_STATES.value)
            logger.warning(
                "[%s] Keeping previous feed states, stored value failed to decode: %s (row %s)",
                self.name, e, e.row,
            )
            return False
        return True

    async def write_sources(self, sources: list[Source]) -> None:
        """Persist the full Source collection, then cache it."""
        await self._store.set({StorageKey.SOURCES.value: encode_sources(sources)})
        get_metrics().record_store_write(StorageKey.SOURCES.value)
        self.state.sources = list(sources)

    async def write_feed_states(self, feeds: list[FeedState]) -> None:
        """Persist the full FeedState collection, then cache it."""
        await self._set_feed_states(encode_feed_states(feeds))
        self.state.feed_states = list(feeds)

    def update_feed_states(
        self, update: Callable[[list[FeedState]], list[FeedState]]
    ) -> "asyncio.Future[list[FeedState]]":
        """
        Read-modify-write the cached feed states and schedule persisting them.

        ``update`` runs synchronously against the cache and its result is
        cached before this returns, so the next update made in this
        context already sees it. The returned future resolves once the
        collection is persisted. If persisting fails, the previous
        collection is restored unless something replaced it meanwhile,
        and the future carries the error.
        """
        previous = self.state.feed_states
        updated = update(previous)
        if updated is previous:
            done = asyncio.get_running_loop().create_future()
            done.set_result(previous)
            return done

        self.state.feed_states = updated
        task = asyncio.create_task(self._persist_feed_states(previous, updated))
        self._pending_writes.add(task)
        task.add_done_callback(self._write_done)
        return task

    def _write_done(self, task: asyncio.Task) -> None:
        self._pending_writes.discard(task)
        # Failures are logged in _persist_feed_states; mark them retrieved
        if not task.cancelled():
            task.exception()

    async def _persist_feed_states(
        self, previous: list[FeedState], updated: list[FeedState]
    ) -> list[FeedState]:
        # Write whatever is cached now; a later update may already have landed
        try:
            await self._set_feed_states(encode_feed_states(self.state.feed_states))
        except Exception as e:
            logger.error("[%s] Failed to persist feed states: %s", self.name, e)
            if self.state.feed_states is updated:
                self.state.feed_states = previous
            raise
        return updated

    async def _set_feed_states(self, encoded: str) -> None:
        self._unacknowledged.append(encoded)
        try:
            await self._store.set({StorageKey.FEED_STATES.value: encoded})
        except Exception:
            if encoded in self._unacknowledged:
                self._unacknowledged.remove(encoded)
            raise
        get_metrics().record_store_write(StorageKey.FEED_STATES.value)

    def _is_superseded(self, new_value: str | None) -> bool:
        """Check whether a feed states notification is older than our cache.

        Notifications of this context's own writes can arrive after it has
        already cached (and started persisting) a newer collection. Those
        are acknowledged without being applied. Any other writer's value
        is always applied.
        """
        if new_value not in self._unacknowledged:
            self._unacknowledged.clear()
            return False

        while self._unacknowledged:
            if self._unacknowledged.popleft() == new_value:
                break
        return bool(self._unacknowledged)

    async def flush(self) -> None:
        """Wait for scheduled writes, ignoring their failures."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)
