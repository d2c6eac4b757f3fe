"""
Canonical identity resolution for feed sources.

A source is identified by the first ``/r/<name>`` segment of its URL.
The lowercased ``r/<name>`` is the canonical ``id``, so URLs that differ
only in case, scheme, host casing, trailing slash, query or fragment
resolve to the same identity.

Resolution is total: anything that does not name a real source
(garbage input, URLs without a source segment, aggregate feeds such as
``r/all``) resolves to ``None`` rather than raising.
"""

import re
from urllib.parse import urlsplit

from feed_throttle.sources.schemas import Identity

DEFAULT_BASE_URL = "https://www.reddit.com"

# Aggregate feeds that don't map to a single source
RESERVED_NAMES = frozenset({"r/all", "r/popular"})

_SOURCE_SEGMENT = re.compile(r"/r/[^/#?%]+")
_WHITESPACE = re.compile(r"\s+")


def is_reserved(identity: Identity) -> bool:
    """Check whether an identity names an aggregate feed."""
    return identity.id in RESERVED_NAMES


def resolve_from_url(raw: str) -> Identity | None:
    """
    Resolve a source URL to its canonical identity.

    Args:
        raw: Absolute URL, e.g. ``"https://www.reddit.com/r/Python/comments/x"``

    Returns:
        Identity, or None if the URL names no (non-reserved) source
    """
    if not isinstance(raw, str):
        return None

    try:
        parts = urlsplit(_WHITESPACE.sub("", raw))
    except ValueError:
        return None

    if not parts.scheme or not parts.netloc:
        return None

    match = _SOURCE_SEGMENT.search(parts.path)
    if match is None:
        return None

    display_name = match.group(0).lstrip("/")
    identity = Identity(
        id=display_name.lower(),
        display_name=display_name,
        url=f"{parts.scheme.lower()}://{parts.netloc.lower()}/{display_name}",
    )

    if is_reserved(identity):
        return None

    return identity


def resolve_from_name(name: str, base_url: str = DEFAULT_BASE_URL) -> Identity | None:
    """
    Resolve a source name such as ``"r/Python"`` or ``"/r/Python/"``.

    Args:
        name: Source name including the ``r/`` prefix
        base_url: Origin used to synthesize the canonical URL

    Returns:
        Identity, or None if the name names no (non-reserved) source
    """
    if not isinstance(name, str):
        return None

    clean_name = _WHITESPACE.sub("", name).strip("/")
    return resolve_from_url(f"{base_url.rstrip('/')}/{clean_name}")
