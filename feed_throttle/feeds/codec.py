"""
Storage encoding for the FeedState collection.

    internalId,configFrequency,statTotal,statSkips
    0,1.0,12,0
    1,0.25,40,29

Values are read leniently: a missing or non-numeric frequency becomes
1.0 and missing or non-numeric counters become 0, including columns absent
from the header. Only structural problems (invalid CSV, wrong number of
fields) fail the decode.
"""

import math
from collections.abc import Iterable

from feed_throttle.feeds.schemas import (
    DEFAULT_FREQUENCY,
    FeedConfig,
    FeedState,
    FeedStats,
    normalize_feed_state,
)
from feed_throttle.storage.table import decode_table, encode_table

FEED_STATE_FIELDS = ("internalId", "configFrequency", "statTotal", "statSkips")


def _parse_number(value: str, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def encode_feed_states(feeds: Iterable[FeedState]) -> str:
    """Encode feed states as CSV for storage."""
    return encode_table(
        FEED_STATE_FIELDS,
        (
            (
                feed.internal_id,
                repr(float(feed.config.frequency)),
                int(feed.stats.total),
                int(feed.stats.skips),
            )
            for feed in feeds
        ),
    )


def decode_feed_states(data: str | None) -> list[FeedState]:
    """
    Decode feed states from storage CSV.

    Raises:
        CodecError: If the table is structurally malformed.
    """
    return [
        normalize_feed_state(
            FeedState(
                internal_id=row["internalId"].strip(),
                config=FeedConfig(
                    frequency=_parse_number(row["configFrequency"], DEFAULT_FREQUENCY)
                ),
                stats=FeedStats(
                    total=int(_parse_number(row["statTotal"], 0)),
                    skips=int(_parse_number(row["statSkips"], 0)),
                ),
            )
        )
        for row in decode_table(data, FEED_STATE_FIELDS)
    ]
