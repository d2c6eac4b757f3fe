"""Watcher: incremental detection of feed items in the page."""

from feed_throttle.watcher.config import WatcherConfig
from feed_throttle.watcher.mutations import MutationFeed
from feed_throttle.watcher.watcher import ChangeWatcher, ItemEvent, WatchContext

__all__ = [
    "ChangeWatcher",
    "ItemEvent",
    "MutationFeed",
    "WatchContext",
    "WatcherConfig",
]
