"""End-to-end tests of the coordinator, page and settings contexts."""

import pytest
from bs4 import BeautifulSoup

from feed_throttle.errors import MessageDeliveryError
from feed_throttle.feeds.codec import decode_feed_states, encode_feed_states
from feed_throttle.feeds.schemas import FeedConfig, FeedState, FeedStats
from feed_throttle.messaging.bus import MessageBus
from feed_throttle.messaging.schemas import CONTEXT_ROUTES, ContextName, MessageType
from feed_throttle.sources.codec import decode_sources, encode_sources
from feed_throttle.sources.config import DiscoveryConfig
from feed_throttle.sources.identity import resolve_from_name
from feed_throttle.storage.kv import InMemoryKeyValueStore, StorageKey
from feed_throttle.sync.coordinator import CoordinatorContext
from feed_throttle.sync.page import PageContext
from feed_throttle.sync.settings_view import SettingsContext
from feed_throttle.sync.synchronizer import Synchronizer
from feed_throttle.watcher.mutations import MutationFeed

SOURCES = StorageKey.SOURCES.value
FEEDS = StorageKey.FEED_STATES.value

FRONT_PAGE = "https://www.reddit.com/"


def _feed(internal_id: str, frequency: float = 1.0, total: int = 0, skips: int = 0):
    return FeedState(
        internal_id=internal_id,
        config=FeedConfig(frequency=frequency),
        stats=FeedStats(total=total, skips=skips),
    )


def _stored_feeds(store: InMemoryKeyValueStore) -> dict[str, FeedState]:
    return {f.internal_id: f for f in decode_feed_states(store.snapshot().get(FEEDS))}


def _post_titles(page: BeautifulSoup) -> list[str]:
    return [post.h3.get_text() for post in page.select(".Post")]


@pytest.fixture
def bus() -> MessageBus:
    return MessageBus(routes=CONTEXT_ROUTES)


@pytest.fixture
def seeded_store(sample_sources) -> InMemoryKeyValueStore:
    """Python (id 1, half frequency) and AskReddit (id 2), stats at zero."""
    return InMemoryKeyValueStore(initial={
        SOURCES: encode_sources(sample_sources),
        FEEDS: encode_feed_states([_feed("1", frequency=0.5), _feed("2")]),
    })


def _page_context(store, bus, page, location=FRONT_PAGE, timeout=None) -> PageContext:
    return PageContext(
        store,
        bus.endpoint(ContextName.PAGE.value),
        page,
        MutationFeed(page),
        location=lambda: location,
        discovery_config=DiscoveryConfig(interval_seconds=0.01, timeout_seconds=timeout),
    )


# ── Coordinator ──────────────────────────────────────────


class TestCoordinator:
    """Test source merging and feed state reconciliation."""

    @pytest.mark.asyncio
    async def test_discovered_sources_merged_and_reconciled(self, store, bus):
        coordinator = CoordinatorContext(store, bus.endpoint(ContextName.COORDINATOR.value))
        await coordinator.start()

        responses = await bus.endpoint(ContextName.PAGE.value).send(
            MessageType.DID_OBTAIN_SOURCES,
            {"sources": [resolve_from_name("r/Python"), resolve_from_name("r/rust")]},
        )
        await store.join()

        assert responses == [2]
        sources = decode_sources(store.snapshot()[SOURCES])
        assert [(s.id, s.internal_id, s.is_subscribed) for s in sources] == [
            ("r/python", "1", True),
            ("r/rust", "2", True),
        ]
        assert list(_stored_feeds(store)) == ["1", "2"]
        assert coordinator.badge_text == "2"
        coordinator.stop()

    @pytest.mark.asyncio
    async def test_unsubscribed_source_keeps_feed_state(self, seeded_store, bus):
        coordinator = CoordinatorContext(seeded_store, bus.endpoint(ContextName.COORDINATOR.value))
        await coordinator.start()

        await bus.endpoint(ContextName.PAGE.value).send(
            MessageType.DID_OBTAIN_SOURCES, {"sources": [resolve_from_name("r/Python")]}
        )
        await seeded_store.join()

        sources = decode_sources(seeded_store.snapshot()[SOURCES])
        assert [(s.internal_id, s.is_subscribed) for s in sources] == [("1", True), ("2", False)]
        assert list(_stored_feeds(seeded_store)) == ["1", "2"]
        coordinator.stop()

    @pytest.mark.asyncio
    async def test_corrupted_sources_not_overwritten(self, bus):
        store = InMemoryKeyValueStore(initial={SOURCES: "internalId,rawName\n1"})
        coordinator = CoordinatorContext(store, bus.endpoint(ContextName.COORDINATOR.value))
        await coordinator.start()

        with pytest.raises(MessageDeliveryError):
            await bus.endpoint(ContextName.PAGE.value).send(
                MessageType.DID_OBTAIN_SOURCES, {"sources": [resolve_from_name("r/rust")]}
            )

        assert store.snapshot()[SOURCES] == "internalId,rawName\n1"
        coordinator.stop()

    @pytest.mark.asyncio
    async def test_unresolvable_stored_row_does_not_block_merge(self, bus):
        store = InMemoryKeyValueStore(
            initial={SOURCES: "internalId,rawName,isSubscribed\n0,all,1\n1,Python,1"}
        )
        coordinator = CoordinatorContext(store, bus.endpoint(ContextName.COORDINATOR.value))
        await coordinator.start()

        responses = await bus.endpoint(ContextName.PAGE.value).send(
            MessageType.DID_OBTAIN_SOURCES, {"sources": [resolve_from_name("r/rust")]}
        )
        await store.join()

        assert responses == [2]
        sources = decode_sources(store.snapshot()[SOURCES])
        assert [(s.id, s.internal_id, s.is_subscribed) for s in sources] == [
            ("r/python", "1", False),
            ("r/rust", "2", True),
        ]
        assert [s.id for s in coordinator.sync.state.sources] == ["r/python", "r/rust"]
        assert list(_stored_feeds(store)) == ["1", "2"]
        coordinator.stop()

    @pytest.mark.asyncio
    async def test_dropped_feed_state_restored(self, seeded_store, bus):
        """A writer holding a stale collection loses nothing for long."""
        coordinator = CoordinatorContext(seeded_store, bus.endpoint(ContextName.COORDINATOR.value))
        await coordinator.start()
        stale_writer = Synchronizer(seeded_store, name="stale")

        await stale_writer.write_feed_states([_feed("1", frequency=0.5, total=7, skips=3)])
        await seeded_store.join()

        feeds = _stored_feeds(seeded_store)
        assert feeds["1"] == _feed("1", frequency=0.5, total=7, skips=3)
        assert feeds["2"] == _feed("2")
        coordinator.stop()

    @pytest.mark.asyncio
    async def test_stopped_coordinator_ignores_messages(self, store, bus):
        coordinator = CoordinatorContext(store, bus.endpoint(ContextName.COORDINATOR.value))
        await coordinator.start()
        coordinator.stop()

        responses = await bus.endpoint(ContextName.PAGE.value).send(
            MessageType.DID_OBTAIN_SOURCES, {"sources": [resolve_from_name("r/rust")]}
        )

        assert responses == [None]
        assert SOURCES not in store.snapshot()


# ── Page ─────────────────────────────────────────────────


class TestPage:
    """Test throttling feed items in the page."""

    @pytest.mark.asyncio
    async def test_items_throttled_and_stats_persisted(self, seeded_store, bus, desktop_page):
        coordinator = CoordinatorContext(seeded_store, bus.endpoint(ContextName.COORDINATOR.value))
        await coordinator.start()
        page = _page_context(seeded_store, bus, desktop_page)

        await page.start()
        await page.wait_for_discovery()
        await page.stop()
        await seeded_store.join()

        # Python at 0.5: show, skip, show. AskReddit at 1.0: show.
        assert _post_titles(desktop_page) == ["first", "third", "fourth"]
        feeds = _stored_feeds(seeded_store)
        assert feeds["1"].stats == FeedStats(total=3, skips=1)
        assert feeds["2"].stats == FeedStats(total=1, skips=0)
        coordinator.stop()

    @pytest.mark.asyncio
    async def test_single_source_view_untouched(self, seeded_store, bus, desktop_page):
        page = _page_context(
            seeded_store, bus, desktop_page, location="https://www.reddit.com/r/Python/"
        )

        await page.start()
        await page.stop()
        await seeded_store.join()

        assert _post_titles(desktop_page) == ["first", "second", "third", "fourth"]
        assert _stored_feeds(seeded_store)["1"].stats == FeedStats()

    @pytest.mark.asyncio
    async def test_new_items_throttled(self, seeded_store, bus):
        html = '<div class="ListingLayout-outerContainer"></div>'
        document = BeautifulSoup(html, "html.parser")
        page = _page_context(seeded_store, bus, document, timeout=0)
        await page.start()

        container = document.select_one(".ListingLayout-outerContainer")
        wrappers = []
        for title in ("a", "b", "c", "d"):
            wrapper = BeautifulSoup(
                '<div><div class="Post"><a data-click-id="subreddit" href="/r/Python/">'
                f"r/Python</a><h3>{title}</h3></div></div>",
                "html.parser",
            ).div
            wrappers.append(wrapper)
        page.watcher._mutations.append(container, *wrappers)

        await page.stop()
        await seeded_store.join()

        assert _post_titles(document) == ["a", "c"]
        assert len(container.find_all("div", recursive=False)) == 2
        assert _stored_feeds(seeded_store)["1"].stats == FeedStats(total=4, skips=2)

    @pytest.mark.asyncio
    async def test_discovery_timeout_does_not_break_page(self, seeded_store, bus):
        html = (
            '<div class="ListingLayout-outerContainer">'
            '<div class="Post"><a data-click-id="subreddit" href="/r/Python/">r/Python</a>'
            "<h3>only</h3></div></div>"
        )
        document = BeautifulSoup(html, "html.parser")
        page = _page_context(seeded_store, bus, document, timeout=0)

        await page.start()
        await page.wait_for_discovery()
        await page.stop()

        assert _post_titles(document) == ["only"]
        assert page.watcher is not None
        assert not page.watcher.is_running


# ── Settings ─────────────────────────────────────────────


class TestSettings:
    """Test the settings context."""

    @pytest.mark.asyncio
    async def test_rows_and_search(self, seeded_store):
        settings = SettingsContext(seeded_store)
        assert settings.is_loading

        await settings.start()

        assert not settings.is_loading
        assert [r.source.display_name for r in settings.rows()] == ["r/AskReddit", "r/Python"]
        assert [r.source.display_name for r in settings.rows("pyth")] == ["r/Python"]
        settings.stop()

    @pytest.mark.asyncio
    async def test_subscribed_only(self, bus, seeded_store):
        coordinator = CoordinatorContext(seeded_store, bus.endpoint(ContextName.COORDINATOR.value))
        await coordinator.start()
        await bus.endpoint(ContextName.PAGE.value).send(
            MessageType.DID_OBTAIN_SOURCES, {"sources": [resolve_from_name("r/Python")]}
        )
        await seeded_store.join()
        settings = SettingsContext(seeded_store)
        await settings.start()

        assert len(settings.rows()) == 2
        assert [r.source.display_name for r in settings.rows(subscribed_only=True)] == ["r/Python"]
        coordinator.stop()

    @pytest.mark.asyncio
    async def test_update_frequency_persisted(self, seeded_store):
        settings = SettingsContext(seeded_store)
        await settings.start()

        await settings.update_frequency("2", 0.25)

        assert _stored_feeds(seeded_store)["2"].config.frequency == 0.25
        assert settings.sync.state.feed_state("2").config.frequency == 0.25

    @pytest.mark.asyncio
    async def test_update_frequency_clamped(self, seeded_store):
        settings = SettingsContext(seeded_store)
        await settings.start()

        await settings.update_frequency("2", 0)

        assert _stored_feeds(seeded_store)["2"].config.frequency == 0.01

    @pytest.mark.asyncio
    async def test_update_unknown_id_is_noop(self, seeded_store):
        settings = SettingsContext(seeded_store)
        await settings.start()
        before = seeded_store.snapshot()

        feeds = await settings.update_frequency("99", 0.5)

        assert feeds is settings.sync.state.feed_states
        assert seeded_store.snapshot() == before

    @pytest.mark.asyncio
    async def test_sees_page_writes(self, seeded_store, bus, desktop_page):
        settings = SettingsContext(seeded_store)
        await settings.start()
        page = _page_context(seeded_store, bus, desktop_page)

        await page.start()
        await page.stop()
        await seeded_store.join()

        python_row = settings.rows("python")[0]
        assert python_row.feed.stats == FeedStats(total=3, skips=1)
        settings.stop()
