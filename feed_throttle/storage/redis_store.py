"""Redis-backed key-value store with pub/sub change notifications.

Values for one storage area live in a single Redis hash. Every write
publishes a JSON change record on the area's channel; each process runs
its own subscriber and fans the changes out to its local listeners, so
contexts in different processes see each other's writes.

Pattern: Background subscriber task + local listener fan-out.
"""

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any

from feed_throttle.storage.kv import (
    ChangeListener,
    KeyValueStore,
    StopHandle,
    StorageChange,
    notify_listeners,
)

logger = logging.getLogger(__name__)


def _decode(value: str | bytes | None) -> str | None:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisKeyValueStore(KeyValueStore):
    """Shared store on Redis.

    Lifecycle:
        1. ``start()``: subscribe to the change channel, spawn listener
        2. ``get`` / ``set`` / ``watch``: normal use
        3. ``stop()``: cancel the listener task, close pub/sub
    """

    def __init__(
        self,
        redis_client: Any,
        area: str = "sync",
        key_prefix: str = "feed_throttle",
    ) -> None:
        super().__init__(area)
        self._redis = redis_client
        self._hash_key = f"{key_prefix}:{area}"
        self._channel = f"{key_prefix}:changes:{area}"
        self._listeners: list[ChangeListener] = []
        self._subscriber_task: asyncio.Task | None = None
        self._pubsub: Any | None = None
        self._running = False

    @property
    def channel(self) -> str:
        """Pub/sub channel carrying change records."""
        return self._channel

    async def get(self, defaults: Mapping[str, str]) -> dict[str, str]:
        keys = list(defaults)
        if not keys:
            return {}

        values = await self._redis.hmget(self._hash_key, keys)
        result = {}
        for key, value in zip(keys, values):
            value = _decode(value)
            result[key] = defaults[key] if value is None else value
        return result

    async def set(self, items: Mapping[str, str]) -> None:
        keys = list(items)
        if not keys:
            return

        old_values = [_decode(v) for v in await self._redis.hmget(self._hash_key, keys)]
        await self._redis.hset(self._hash_key, mapping=dict(items))

        for key, old_value in zip(keys, old_values):
            if old_value == items[key]:
                continue
            payload = json.dumps({
                "key": key,
                "oldValue": old_value,
                "newValue": items[key],
                "area": self.area,
            })
            await self._redis.publish(self._channel, payload)

    def watch(self, listener: ChangeListener) -> StopHandle:
        self._listeners.append(listener)

        def stop() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return stop

    async def start(self) -> None:
        """Subscribe to the change channel and spawn the listener task."""
        if self._running:
            return

        self._running = True
        try:
            self._pubsub = self._redis.pubsub()
            await self._pubsub.subscribe(self._channel)
            self._subscriber_task = asyncio.create_task(
                self._listen(), name="kv-change-listener",
            )
            logger.info("RedisKeyValueStore started (channel=%s)", self._channel)
        except Exception:
            self._running = False
            raise

    async def stop(self) -> None:
        """Stop the listener task and close pub/sub."""
        self._running = False

        if self._subscriber_task is not None:
            self._subscriber_task.cancel()
            try:
                await self._subscriber_task
            except asyncio.CancelledError:
                pass
            self._subscriber_task = None

        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(self._channel)
                await self._pubsub.close()
            except Exception as e:
                logger.warning("Error closing pub/sub: %s", e)
            self._pubsub = None

        self._listeners.clear()
        logger.info("RedisKeyValueStore stopped")

    async def _listen(self) -> None:
        """Background task: read change records from pub/sub and dispatch."""
        try:
            while self._running:
                try:
                    message = await self._pubsub.get_message(
                        ignore_subscribe_messages=True, timeout=1.0,
                    )
                    if message is not None and message["type"] == "message":
                        await self._dispatch_message(message["data"])
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning("Error reading pub/sub message: %s", e)
                    await asyncio.sleep(1.0)
        except asyncio.CancelledError:
            pass

    async def _dispatch_message(self, raw_data: str | bytes) -> None:
        """Parse a change record and deliver it to local listeners."""
        try:
            payload = json.loads(_decode(raw_data))
            change = StorageChange(
                key=payload["key"],
                old_value=payload.get("oldValue"),
                new_value=payload.get("newValue"),
                area=payload.get("area", self.area),
            )
        except (json.JSONDecodeError, UnicodeDecodeError, KeyError, TypeError) as e:
            logger.warning("Invalid change record: %s", e)
            return

        await notify_listeners(
            list(self._listeners),
            [change],
            is_active=lambda listener: listener in self._listeners,
        )
