"""Storage layer: shared key-value store and flat CSV tables."""

from feed_throttle.storage.kv import (
    InMemoryKeyValueStore,
    KeyValueStore,
    StorageChange,
    StorageKey,
)
from feed_throttle.storage.redis_store import RedisKeyValueStore

__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "StorageChange",
    "StorageKey",
]
