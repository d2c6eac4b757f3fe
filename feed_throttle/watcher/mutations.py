"""
Delivery of structural additions to a document tree.

The host environment decides when and how added nodes are reported; it
may coalesce or delay them arbitrarily. ``MutationFeed`` is the
in-process host: whoever mutates the tree reports the added nodes, and
every subscriber receives them as one batch.
"""

import logging
from collections.abc import Callable, Sequence

from bs4 import PageElement, Tag

logger = logging.getLogger(__name__)

StopHandle = Callable[[], None]
BatchCallback = Callable[[Sequence[PageElement]], None]


class MutationFeed:
    """Reports batches of nodes added anywhere under an observed root."""

    def __init__(self, root: Tag) -> None:
        self._root = root
        self._subscribers: list[BatchCallback] = []

    @property
    def root(self) -> Tag:
        return self._root

    def subscribe(self, callback: BatchCallback) -> StopHandle:
        """Receive future batches. The returned handle is idempotent."""
        self._subscribers.append(callback)

        def stop() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return stop

    def notify(self, added: Sequence[PageElement]) -> None:
        """Deliver one batch of added nodes to every subscriber."""
        batch = list(added)
        for callback in list(self._subscribers):
            if callback not in self._subscribers:
                continue
            try:
                callback(batch)
            except Exception:
                logger.exception("Mutation subscriber failed on a batch of %d", len(batch))

    def contains(self, node: PageElement) -> bool:
        """Check whether a node is the root or one of its descendants."""
        return node is self._root or any(parent is self._root for parent in node.parents)

    def append(self, parent: Tag, *nodes: PageElement) -> None:
        """Append nodes to ``parent`` and report them if under the root."""
        for node in nodes:
            parent.append(node)
        if self.contains(parent):
            self.notify(nodes)
