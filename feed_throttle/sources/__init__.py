"""Sources: identity resolution, storage encoding, merge and discovery."""

from feed_throttle.sources.codec import decode_sources, encode_sources
from feed_throttle.sources.config import DiscoveryConfig
from feed_throttle.sources.discovery import discover_sources, find_source_links
from feed_throttle.sources.identity import (
    RESERVED_NAMES,
    resolve_from_name,
    resolve_from_url,
)
from feed_throttle.sources.merge import merge_sources
from feed_throttle.sources.schemas import DiscoveredSource, Identity, Source

__all__ = [
    "DiscoveredSource",
    "DiscoveryConfig",
    "Identity",
    "RESERVED_NAMES",
    "Source",
    "decode_sources",
    "discover_sources",
    "encode_sources",
    "find_source_links",
    "merge_sources",
    "resolve_from_name",
    "resolve_from_url",
]
