"""Data models for the sources module."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    """Canonical identity of a feed source (e.g. a subreddit).

    ``id`` is the lowercased display name and is the only field used to
    compare sources across collections and sessions.
    """

    id: str
    display_name: str
    url: str


@dataclass(frozen=True)
class DiscoveredSource(Identity):
    """A source found in the user's source list during discovery."""

    has_icon: bool = False
    icon_url: str | None = None


@dataclass(frozen=True)
class Source(Identity):
    """A subscription record.

    ``internal_id`` is assigned once by the merge step and joins this
    record with its FeedState. Records are never deleted; a source the
    user left is kept with ``is_subscribed=False``.
    """

    internal_id: str = ""
    is_subscribed: bool = True

    @classmethod
    def from_identity(
        cls, identity: Identity, internal_id: str, is_subscribed: bool = True
    ) -> "Source":
        return cls(
            id=identity.id,
            display_name=identity.display_name,
            url=identity.url,
            internal_id=internal_id,
            is_subscribed=is_subscribed,
        )
