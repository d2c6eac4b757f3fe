"""Tests for RedisKeyValueStore: hash reads/writes, change records, pub/sub."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from feed_throttle.storage.kv import StorageChange, StorageKey
from feed_throttle.storage.redis_store import RedisKeyValueStore

SOURCES = StorageKey.SOURCES.value
FEEDS = StorageKey.FEED_STATES.value


def _mock_redis(stored: list | None = None) -> AsyncMock:
    redis = AsyncMock()
    redis.hmget = AsyncMock(return_value=stored or [None])
    return redis


def _mock_pubsub(messages: list | None = None) -> AsyncMock:
    """Pub/sub whose get_message yields the given messages, then idles."""
    queue = list(messages or [])
    pubsub = AsyncMock()

    async def get_message(ignore_subscribe_messages=False, timeout=None):
        if queue:
            return queue.pop(0)
        await asyncio.sleep(0.01)
        return None

    pubsub.get_message = AsyncMock(side_effect=get_message)
    return pubsub


# ── Reads and writes ─────────────────────────────────────


class TestGetSet:
    """Test get/set against the area hash."""

    def test_keys_namespaced_by_area(self):
        store = RedisKeyValueStore(_mock_redis(), area="sync", key_prefix="ft")

        assert store._hash_key == "ft:sync"
        assert store.channel == "ft:changes:sync"

    @pytest.mark.asyncio
    async def test_get_with_defaults(self):
        redis = _mock_redis([b"stored", None])
        store = RedisKeyValueStore(redis)

        values = await store.get({SOURCES: "", FEEDS: "default"})

        redis.hmget.assert_called_once_with("feed_throttle:sync", [SOURCES, FEEDS])
        assert values == {SOURCES: "stored", FEEDS: "default"}

    @pytest.mark.asyncio
    async def test_get_nothing(self):
        redis = _mock_redis()
        store = RedisKeyValueStore(redis)

        assert await store.get({}) == {}
        redis.hmget.assert_not_called()

    @pytest.mark.asyncio
    async def test_set_writes_and_publishes_change(self):
        redis = _mock_redis([b"old"])
        store = RedisKeyValueStore(redis)

        await store.set({SOURCES: "new"})

        redis.hset.assert_called_once_with("feed_throttle:sync", mapping={SOURCES: "new"})
        channel, payload = redis.publish.call_args.args
        assert channel == "feed_throttle:changes:sync"
        assert json.loads(payload) == {
            "key": SOURCES,
            "oldValue": "old",
            "newValue": "new",
            "area": "sync",
        }

    @pytest.mark.asyncio
    async def test_set_same_value_not_published(self):
        redis = _mock_redis([b"same"])
        store = RedisKeyValueStore(redis)

        await store.set({SOURCES: "same"})

        redis.hset.assert_called_once()
        redis.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_set_failure_propagates(self):
        redis = _mock_redis()
        redis.hset.side_effect = ConnectionError("Redis down")
        store = RedisKeyValueStore(redis)

        with pytest.raises(ConnectionError):
            await store.set({SOURCES: "new"})

        redis.publish.assert_not_called()


# ── Change records ───────────────────────────────────────


class TestDispatchMessage:
    """Test _dispatch_message delivery to local listeners."""

    @pytest.mark.asyncio
    async def test_delivers_change(self):
        store = RedisKeyValueStore(_mock_redis())
        received = []
        store.watch(received.append)

        await store._dispatch_message(json.dumps({
            "key": FEEDS, "oldValue": None, "newValue": "x", "area": "sync",
        }).encode())

        assert received == [
            StorageChange(key=FEEDS, old_value=None, new_value="x", area="sync")
        ]

    @pytest.mark.asyncio
    async def test_invalid_record_ignored(self):
        store = RedisKeyValueStore(_mock_redis())
        listener = MagicMock()
        store.watch(listener)

        await store._dispatch_message("not json")
        await store._dispatch_message(json.dumps({"newValue": "no key"}))

        listener.assert_not_called()

    @pytest.mark.asyncio
    async def test_stopped_listener_not_called(self):
        store = RedisKeyValueStore(_mock_redis())
        listener = MagicMock()
        stop = store.watch(listener)
        stop()

        await store._dispatch_message(json.dumps({"key": SOURCES, "newValue": "x"}))

        listener.assert_not_called()


# ── Lifecycle ────────────────────────────────────────────


class TestLifecycle:
    """Test start/stop and the background listener."""

    @pytest.mark.asyncio
    async def test_listener_receives_published_changes(self):
        record = json.dumps({"key": SOURCES, "oldValue": None, "newValue": "a", "area": "sync"})
        pubsub = _mock_pubsub([{"type": "message", "data": record.encode()}])
        redis = _mock_redis()
        redis.pubsub = MagicMock(return_value=pubsub)
        store = RedisKeyValueStore(redis)
        received = []
        store.watch(received.append)

        await store.start()
        for _ in range(50):
            if received:
                break
            await asyncio.sleep(0.01)
        await store.stop()

        pubsub.subscribe.assert_called_once_with("feed_throttle:changes:sync")
        pubsub.unsubscribe.assert_called_once_with("feed_throttle:changes:sync")
        assert [c.new_value for c in received] == ["a"]

    @pytest.mark.asyncio
    async def test_start_twice_subscribes_once(self):
        pubsub = _mock_pubsub()
        redis = _mock_redis()
        redis.pubsub = MagicMock(return_value=pubsub)
        store = RedisKeyValueStore(redis)

        await store.start()
        await store.start()
        await store.stop()

        pubsub.subscribe.assert_called_once()

    @pytest.mark.asyncio
    async def test_failed_subscribe_can_retry(self):
        pubsub = _mock_pubsub()
        pubsub.subscribe.side_effect = [ConnectionError("Redis down"), None]
        redis = _mock_redis()
        redis.pubsub = MagicMock(return_value=pubsub)
        store = RedisKeyValueStore(redis)

        with pytest.raises(ConnectionError):
            await store.start()
        await store.start()
        await store.stop()

        assert pubsub.subscribe.call_count == 2

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        store = RedisKeyValueStore(_mock_redis())

        await store.stop()
