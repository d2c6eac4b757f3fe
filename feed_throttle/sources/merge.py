"""Merging discovered sources into the stored subscription list."""

import logging
from collections.abc import Iterable, Sequence

from feed_throttle.sources.schemas import Identity, Source

logger = logging.getLogger(__name__)


def parse_internal_id(internal_id: str) -> int | None:
    """Integer value of an internal id, or None if it is not numeric."""
    try:
        return int(internal_id)
    except (TypeError, ValueError):
        return None


def numeric_internal_id(internal_id: str) -> int:
    """Integer value of an internal id, treating non-numeric ids as 0."""
    value = parse_internal_id(internal_id)
    return 0 if value is None else value


def next_internal_id(sources: Iterable[Source]) -> int:
    """First integer id not below any numeric internal id in use.

    Ids are passed around as strings but are minted as auto-incremented
    integers, so the next one is the highest numeric id plus one. An empty
    collection counts as a highest id of 0.
    """
    return max((numeric_internal_id(s.internal_id) for s in sources), default=0) + 1


def merge_sources(
    discovered: Sequence[Identity], existing: Sequence[Source]
) -> list[Source]:
    """
    Merge the currently discovered sources into the stored ones.

    ``discovered`` is taken as the user's *current* subscription list:
    stored sources found in it are flagged subscribed, those missing from
    it are kept but flagged unsubscribed, and discovered sources not yet
    stored are appended with freshly minted internal ids. Comparison is
    by canonical id only.

    Args:
        discovered: Identities parsed from the user's source list
        existing: Previously stored sources

    Returns:
        Existing sources (same order) followed by the new ones
    """
    discovered_ids = {identity.id for identity in discovered}
    existing_ids = {source.id for source in existing}

    updated_existing = [
        Source.from_identity(
            source,
            internal_id=source.internal_id,
            is_subscribed=source.id in discovered_ids,
        )
        for source in existing
    ]

    new_identities: list[Identity] = []
    seen: set[str] = set()
    for identity in discovered:
        if identity.id in existing_ids or identity.id in seen:
            continue
        seen.add(identity.id)
        new_identities.append(identity)

    first_id = next_internal_id(existing)
    added = [
        Source.from_identity(identity, internal_id=str(first_id + index))
        for index, identity in enumerate(new_identities)
    ]

    if added:
        logger.debug(
            "Merged %d new source(s) into %d existing", len(added), len(existing)
        )
    return updated_existing + added
