"""
Storage encoding for the Source collection.

Sources are stored as CSV with the ``r/`` prefix omitted from names, e.g.::

    internalId,rawName,isSubscribed
    0,AskReddit,1
    1,Pokemon,0
"""

import logging
from collections.abc import Iterable

from feed_throttle.sources.identity import resolve_from_name
from feed_throttle.sources.schemas import Source
from feed_throttle.storage.table import decode_table, encode_table

SOURCE_FIELDS = ("internalId", "rawName", "isSubscribed")

_NAME_PREFIX = "r/"

logger = logging.getLogger(__name__)


def _raw_name(display_name: str) -> str:
    if display_name.startswith(_NAME_PREFIX):
        return display_name[len(_NAME_PREFIX):]
    return display_name


def encode_sources(sources: Iterable[Source]) -> str:
    """Encode sources as CSV for storage."""
    return encode_table(
        SOURCE_FIELDS,
        (
            (
                source.internal_id,
                _raw_name(source.display_name),
                "1" if source.is_subscribed else "0",
            )
            for source in sources
        ),
    )


def decode_sources(data: str | None) -> list[Source]:
    """
    Decode sources from storage CSV.

    Rows whose stored name no longer resolves to a source (an aggregate
    feed such as ``all``, or an empty name) are skipped with a warning.
    A missing ``isSubscribed`` column reads as not subscribed.

    Raises:
        CodecError: If the table is structurally malformed.
    """
    sources = []
    for row_number, row in enumerate(decode_table(data, SOURCE_FIELDS), start=2):
        identity = resolve_from_name(f"{_NAME_PREFIX}{row['rawName']}")
        if identity is None:
            logger.warning(
                "Skipping stored source on row %d, name %r does not resolve",
                row_number, row["rawName"],
            )
            continue

        sources.append(
            Source.from_identity(
                identity,
                internal_id=row["internalId"].strip(),
                is_subscribed=row["isSubscribed"].strip() == "1",
            )
        )
    return sources
