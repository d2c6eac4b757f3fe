"""
Persistent key-value store abstraction with change notifications.

Every execution context talks to the same store. A write by one context
is delivered to the listeners of every context (including the writer)
as a ``StorageChange``, which is how contexts learn about each other's
writes. The store is treated as an eventually consistent string store:
full values are written, last writer wins.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

StopHandle = Callable[[], None]


class StorageKey(str, Enum):
    """Keys of the two independently written collections."""

    SOURCES = "StorageKey:sources"
    FEED_STATES = "StorageKey:feedStates"


@dataclass(frozen=True)
class StorageChange:
    """A single key's value change, as delivered to listeners."""

    key: str
    old_value: str | None
    new_value: str | None
    area: str


ChangeListener = Callable[[StorageChange], Awaitable[None] | None]


async def notify_listeners(
    listeners: Sequence[ChangeListener],
    changes: Sequence[StorageChange],
    is_active: Callable[[ChangeListener], bool] = lambda _: True,
) -> None:
    """
    Deliver changes to listeners, isolating their failures.

    A listener that raises (synchronously or from its coroutine) is
    logged and does not prevent delivery to the others. Listeners for
    which ``is_active`` turns False before their turn are skipped.
    """
    pending: list[Awaitable[None]] = []
    for change in changes:
        for listener in listeners:
            if not is_active(listener):
                continue
            try:
                result = listener(change)
            except Exception:
                logger.exception("Storage listener failed for %s", change.key)
                continue
            if inspect.isawaitable(result):
                pending.append(result)

    if not pending:
        return

    results = await asyncio.gather(*pending, return_exceptions=True)
    for result in results:
        if isinstance(result, Exception):
            logger.error(
                "Storage listener failed: %s", result, exc_info=result
            )


class KeyValueStore(ABC):
    """Async string store shared by all contexts."""

    def __init__(self, area: str = "sync") -> None:
        self.area = area

    @abstractmethod
    async def get(self, defaults: Mapping[str, str]) -> dict[str, str]:
        """Read keys, falling back to the given default for missing ones."""
        ...

    @abstractmethod
    async def set(self, items: Mapping[str, str]) -> None:
        """Write full values for the given keys."""
        ...

    @abstractmethod
    def watch(self, listener: ChangeListener) -> StopHandle:
        """Register a change listener. The returned handle is idempotent."""
        ...


class InMemoryKeyValueStore(KeyValueStore):
    """
    Process-local store shared by contexts running in one event loop.

    Notifications are dispatched from a separate task after ``set``
    returns, and only for keys whose value actually changed. Use
    ``join()`` to wait until every queued notification has been
    delivered, including those caused by listeners writing in turn.
    """

    def __init__(
        self,
        area: str = "sync",
        initial: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(area)
        self._data: dict[str, str] = dict(initial or {})
        self._listeners: list[ChangeListener] = []
        self._dispatches: set[asyncio.Task] = set()

    async def get(self, defaults: Mapping[str, str]) -> dict[str, str]:
        return {key: self._data.get(key, default) for key, default in defaults.items()}

    async def set(self, items: Mapping[str, str]) -> None:
        changes = []
        for key, value in items.items():
            old_value = self._data.get(key)
            self._data[key] = value
            if old_value != value:
                changes.append(
                    StorageChange(
                        key=key, old_value=old_value, new_value=value, area=self.area
                    )
                )

        if changes:
            task = asyncio.create_task(
                notify_listeners(
                    list(self._listeners),
                    changes,
                    is_active=lambda listener: listener in self._listeners,
                )
            )
            self._dispatches.add(task)
            task.add_done_callback(self._dispatches.discard)

    def watch(self, listener: ChangeListener) -> StopHandle:
        self._listeners.append(listener)

        def stop() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return stop

    async def join(self) -> None:
        """Wait for all pending notifications to be delivered."""
        while self._dispatches:
            await asyncio.gather(*list(self._dispatches))

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw stored values."""
        return dict(self._data)
