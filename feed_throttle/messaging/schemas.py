"""Message types exchanged between execution contexts."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class MessageType(str, Enum):
    """Message types sent between contexts (page / coordinator / settings)."""

    DID_OBTAIN_SOURCES = "feed-throttle:didObtainSources"


class ContextName(str, Enum):
    """The isolated execution contexts."""

    PAGE = "page"
    COORDINATOR = "coordinator"
    SETTINGS = "settings"


# The page and settings contexts cannot reach each other directly;
# the coordinator relays between them.
CONTEXT_ROUTES: dict[str, frozenset[str]] = {
    ContextName.PAGE.value: frozenset({ContextName.COORDINATOR.value}),
    ContextName.SETTINGS.value: frozenset({ContextName.COORDINATOR.value}),
    ContextName.COORDINATOR.value: frozenset(
        {ContextName.PAGE.value, ContextName.SETTINGS.value}
    ),
}


@dataclass(frozen=True)
class Message:
    """A one-shot message.

    Attributes:
        message_type: What the payload describes
        payload: Type-specific data
        origin: Name of the context that first sent the message
        relayed: True once a relay has re-emitted it; relayed messages
            are never relayed again
    """

    message_type: MessageType
    payload: Any = None
    origin: str = ""
    relayed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "messageType": self.message_type.value,
            "payload": self.payload,
            "origin": self.origin,
            "relayed": self.relayed,
        }
