"""Data models for per-source feed state (user preference + stats)."""

from dataclasses import dataclass, field

MIN_FREQUENCY = 0.01
MAX_FREQUENCY = 1.0
DEFAULT_FREQUENCY = 1.0


def clamp_frequency(frequency: float) -> float:
    """Clamp a target show fraction into its valid domain."""
    return min(MAX_FREQUENCY, max(MIN_FREQUENCY, frequency))


@dataclass(frozen=True)
class FeedConfig:
    """User preference for a source: the fraction of its items to show."""

    frequency: float = DEFAULT_FREQUENCY


@dataclass(frozen=True)
class FeedStats:
    """Counters of the items seen from a source.

    Attributes:
        total: Number of items from this source the watcher has decided on
        skips: Number of those items that were skipped (not shown)
    """

    total: int = 0
    skips: int = 0


@dataclass(frozen=True)
class FeedState:
    """Config and stats of one source, keyed by the source's internal id."""

    internal_id: str
    config: FeedConfig = field(default_factory=FeedConfig)
    stats: FeedStats = field(default_factory=FeedStats)


def create_feed_state(internal_id: str) -> FeedState:
    """Default state for a source seen for the first time."""
    return FeedState(internal_id=internal_id)


def normalize_feed_state(feed: FeedState) -> FeedState:
    """Bring a feed state back within its invariants.

    The frequency is clamped into ``[0.01, 1.0]``, counters are made
    non-negative, and ``total`` is raised to ``skips`` if it fell below.
    """
    skips = max(0, int(feed.stats.skips))
    total = max(skips, int(feed.stats.total))
    return FeedState(
        internal_id=feed.internal_id,
        config=FeedConfig(frequency=clamp_frequency(float(feed.config.frequency))),
        stats=FeedStats(total=total, skips=skips),
    )
