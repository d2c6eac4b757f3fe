"""
Skip/show decisions for feed items.

The engine compares the share of a source's items shown so far with the
target frequency, using the counters *before* the current item is
counted. It is therefore a lagging approximation of the target: each
decision reacts to the outcome of the previous ones, never its own.

Example, target 0.5:

    total skips shown_ratio decision
    0     0     -           show   (nothing seen yet)
    1     0     1.0         skip
    2     1     0.5         show
    3     1     0.67        skip
"""

from dataclasses import replace

from feed_throttle.feeds.schemas import FeedState, FeedStats


def shown_ratio(stats: FeedStats) -> float | None:
    """Fraction of items actually shown so far, or None before any item."""
    if stats.total == 0:
        return None
    return 1 - stats.skips / stats.total


def decide(state: FeedState) -> bool:
    """
    Decide whether the next item of a source should be skipped.

    Args:
        state: Feed state with the counters as they were before this item

    Returns:
        True to skip (hide) the item, False to show it
    """
    ratio = shown_ratio(state.stats)
    if ratio is None:
        return False
    return ratio > state.config.frequency


def apply_outcome(state: FeedState, was_skipped: bool) -> FeedState:
    """Count one more item, and one more skip if it was skipped."""
    return replace(
        state,
        stats=FeedStats(
            total=state.stats.total + 1,
            skips=state.stats.skips + (1 if was_skipped else 0),
        ),
    )
