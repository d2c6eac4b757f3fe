"""
Command-line interface for feed-throttle.

Provides commands to inspect and edit the shared state, run the
coordinator against Redis, and throttle a saved page offline.

Usage:
    feed-throttle resolve URL          # Canonical identity of a source URL
    feed-throttle decide -f 0.5 -t 4   # One skip/show decision
    feed-throttle inspect              # Print stored sources and feed states
    feed-throttle set-frequency 3 0.25 # Edit one source's show fraction
    feed-throttle coordinate           # Run the coordinator on Redis
    feed-throttle throttle page.html   # Throttle a saved page offline
"""

import asyncio
import signal
import sys

import click

from feed_throttle.config.settings import get_settings
from feed_throttle.observability.logging import (
    bind_execution_context,
    clear_context,
    get_logger,
    setup_logging,
)
from feed_throttle.observability.metrics import get_metrics

logger = get_logger(__name__)


def _redis_store():
    import redis.asyncio as redis

    from feed_throttle.storage.redis_store import RedisKeyValueStore

    settings = get_settings()
    client = redis.from_url(str(settings.redis_url))
    store = RedisKeyValueStore(
        client, area=settings.storage_area, key_prefix=settings.redis_key_prefix
    )
    return client, store


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Feed Throttle - show only a fraction of each source's feed items."""
    setup_logging("DEBUG" if debug else None)


@main.command()
@click.argument("url")
def resolve(url: str) -> None:
    """Print the canonical identity of a source URL or name."""
    from feed_throttle.sources.identity import resolve_from_name, resolve_from_url

    identity = resolve_from_url(url) or resolve_from_name(url)
    if identity is None:
        click.echo(click.style("No source identity", fg="red"))
        sys.exit(1)

    click.echo(f"id:   {identity.id}")
    click.echo(f"name: {identity.display_name}")
    click.echo(f"url:  {identity.url}")


@main.command()
@click.option("-f", "--frequency", type=click.FloatRange(0.01, 1.0), default=1.0, help="Target show fraction")
@click.option("-t", "--total", type=click.IntRange(min=0), default=0, help="Items seen so far")
@click.option("-s", "--skips", type=click.IntRange(min=0), default=0, help="Items skipped so far")
def decide(frequency: float, total: int, skips: int) -> None:
    """Decide whether the next item of a source would be skipped."""
    from feed_throttle.feeds.engine import decide as decide_item
    from feed_throttle.feeds.engine import shown_ratio
    from feed_throttle.feeds.schemas import FeedConfig, FeedState, FeedStats

    if skips > total:
        raise click.BadParameter("skips cannot exceed total", param_hint="--skips")

    state = FeedState(
        internal_id="cli",
        config=FeedConfig(frequency=frequency),
        stats=FeedStats(total=total, skips=skips),
    )
    ratio = shown_ratio(state.stats)
    outcome = "skip" if decide_item(state) else "show"
    click.echo(f"shown ratio: {'n/a' if ratio is None else f'{ratio:.3f}'}")
    click.echo(click.style(outcome, fg="red" if outcome == "skip" else "green"))


@main.command()
def inspect() -> None:
    """Print the stored sources with their feed states."""
    from feed_throttle.sync.settings_view import SettingsContext

    async def run():
        client, store = _redis_store()
        settings_context = SettingsContext(store)
        try:
            await settings_context.start()
            rows = settings_context.rows()
        finally:
            settings_context.stop()
            await client.aclose()

        click.echo(f"{'id':>4}  {'source':<30} {'sub':<4} {'freq':>5} {'total':>6} {'skips':>6}")
        click.echo("-" * 62)
        for row in rows:
            click.echo(
                f"{row.source.internal_id:>4}  {row.source.display_name:<30} "
                f"{'yes' if row.source.is_subscribed else 'no':<4} "
                f"{row.feed.config.frequency:>5.2f} {row.feed.stats.total:>6} "
                f"{row.feed.stats.skips:>6}"
            )

    asyncio.run(run())


@main.command("set-frequency")
@click.argument("internal_id")
@click.argument("frequency", type=click.FloatRange(0.01, 1.0))
def set_frequency(internal_id: str, frequency: float) -> None:
    """Set the target show fraction of one source."""
    from feed_throttle.sync.settings_view import SettingsContext

    async def run():
        client, store = _redis_store()
        settings_context = SettingsContext(store)
        try:
            await settings_context.start()
            if settings_context.sync.state.feed_state(internal_id) is None:
                click.echo(click.style(f"No feed state for {internal_id}", fg="red"))
                return 1
            await settings_context.update_frequency(internal_id, frequency)
            click.echo(f"Frequency of {internal_id} set to {frequency:.2f}")
            return 0
        finally:
            settings_context.stop()
            await client.aclose()

    result = asyncio.run(run())
    if result != 0:
        sys.exit(result)


@main.command()
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
def coordinate(metrics: bool) -> None:
    """Run the coordinator: reconcile feed states on every store change."""
    from feed_throttle.messaging.bus import MessageBus
    from feed_throttle.messaging.schemas import CONTEXT_ROUTES, ContextName
    from feed_throttle.sync.coordinator import CoordinatorContext

    async def run():
        client, store = _redis_store()
        bus = MessageBus(routes=CONTEXT_ROUTES)
        coordinator = CoordinatorContext(store, bus.endpoint(ContextName.COORDINATOR.value))

        if metrics:
            get_metrics().start_server()

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)

        bind_execution_context(ContextName.COORDINATOR.value, store.area)
        await store.start()
        await coordinator.start()
        logger.info("Coordinator running", channel=store.channel)
        click.echo("Coordinator running (Ctrl+C to stop)")
        try:
            await stop_event.wait()
        finally:
            coordinator.stop()
            await store.stop()
            await client.aclose()
            logger.info("Coordinator stopped")
            clear_context()

    asyncio.run(run())


@main.command()
@click.argument("page", type=click.File("r"))
@click.option("--url", default="https://www.reddit.com/", help="URL the page was saved from")
@click.option("--state-in", type=click.File("r"), help="Stored feed states CSV to start from")
@click.option("--timeout", default=1.0, help="Seconds to look for the source list")
def throttle(page, url: str, state_in, timeout: float) -> None:
    """Throttle a saved page offline and print what would be shown."""
    from bs4 import BeautifulSoup

    from feed_throttle.messaging.bus import MessageBus
    from feed_throttle.messaging.schemas import CONTEXT_ROUTES, ContextName
    from feed_throttle.sources.config import DiscoveryConfig
    from feed_throttle.storage.kv import InMemoryKeyValueStore, StorageKey
    from feed_throttle.sync.coordinator import CoordinatorContext
    from feed_throttle.sync.page import PageContext
    from feed_throttle.watcher.config import WatcherConfig
    from feed_throttle.watcher.mutations import MutationFeed

    document = BeautifulSoup(page.read(), "html.parser")
    initial = {StorageKey.FEED_STATES.value: state_in.read()} if state_in else None

    async def run():
        store = InMemoryKeyValueStore(initial=initial)
        bus = MessageBus(routes=CONTEXT_ROUTES)
        coordinator = CoordinatorContext(store, bus.endpoint(ContextName.COORDINATOR.value))
        await coordinator.start()

        # Items are attributed to stored sources only, so the first visit
        # just records the page's sources and the second one throttles.
        for _ in range(2):
            page_context = PageContext(
                store,
                bus.endpoint(ContextName.PAGE.value),
                document,
                MutationFeed(document),
                location=lambda: url,
                watcher_config=WatcherConfig(),
                discovery_config=DiscoveryConfig(timeout_seconds=timeout),
            )
            await page_context.start()
            await page_context.wait_for_discovery()
            await store.join()
            await page_context.stop()
            await store.join()

        coordinator.stop()

        stored = store.snapshot()
        click.echo("Sources:")
        click.echo(stored.get(StorageKey.SOURCES.value, ""))
        click.echo("Feed states:")
        click.echo(stored.get(StorageKey.FEED_STATES.value, ""))

    asyncio.run(run())

    kept = document.select(WatcherConfig().item_selector)
    click.echo(f"Items shown: {len(kept)}")


if __name__ == "__main__":
    main()
