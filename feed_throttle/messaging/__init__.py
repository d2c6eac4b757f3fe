"""Messaging between isolated execution contexts."""

from feed_throttle.messaging.bus import MessageBus, MessageEndpoint
from feed_throttle.messaging.schemas import (
    CONTEXT_ROUTES,
    ContextName,
    Message,
    MessageType,
)

__all__ = [
    "CONTEXT_ROUTES",
    "ContextName",
    "Message",
    "MessageBus",
    "MessageEndpoint",
    "MessageType",
]
