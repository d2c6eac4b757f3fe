"""
One-shot request/response messaging between contexts.

Each context owns a ``MessageEndpoint`` on a shared ``MessageBus``.
``send`` fans a message out to every live endpoint the sender can reach
and collects one response per endpoint. Not every pair of contexts can
reach each other; an endpoint that receives with
``broadcast_unhandled=True`` re-emits messages none of its handlers
claimed, acting as a relay between contexts that cannot talk directly.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from feed_throttle.errors import MessageDeliveryError
from feed_throttle.messaging.schemas import Message, MessageType
from feed_throttle.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

StopHandle = Callable[[], None]
MessageHandler = Callable[[Message, str], Awaitable[Any] | Any]


@dataclass
class _Registration:
    handlers: Mapping[MessageType, MessageHandler]
    broadcast_unhandled: bool


class MessageBus:
    """
    In-process message fabric connecting the endpoints of all contexts.

    Args:
        routes: For each endpoint name, the names it can deliver to.
            None means every endpoint can reach every other one.
    """

    def __init__(self, routes: Mapping[str, Iterable[str]] | None = None) -> None:
        self._routes = (
            {name: frozenset(targets) for name, targets in routes.items()}
            if routes is not None
            else None
        )
        self._endpoints: dict[str, MessageEndpoint] = {}
        self._relays: set[asyncio.Task] = set()

    def endpoint(self, name: str) -> "MessageEndpoint":
        """Get (creating if needed) the endpoint for a context."""
        if name not in self._endpoints:
            self._endpoints[name] = MessageEndpoint(self, name)
        return self._endpoints[name]

    def reachable_from(self, sender: str) -> list["MessageEndpoint"]:
        """Live endpoints a sender can deliver to, excluding itself."""
        return [
            endpoint
            for name, endpoint in self._endpoints.items()
            if name != sender
            and not endpoint.closed
            and (self._routes is None or name in self._routes.get(sender, ()))
        ]

    async def deliver(
        self, sender: str, message: Message, exclude: Iterable[str] = ()
    ) -> list[Any]:
        """
        Deliver a message to every endpoint reachable from ``sender``.

        Raises:
            MessageDeliveryError: After all endpoints were tried, if any
                handler failed.
        """
        excluded = set(exclude)
        targets = [e for e in self.reachable_from(sender) if e.name not in excluded]
        results = await asyncio.gather(
            *(target.handle(message, sender) for target in targets),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, BaseException)]
        responses = [r for r in results if not isinstance(r, BaseException)]
        if errors:
            raise MessageDeliveryError(message.message_type.value, errors, responses)
        return responses

    def relay(self, relay_name: str, message: Message, sender: str) -> None:
        """Re-emit an unclaimed message without waiting for it."""
        relayed = replace(message, relayed=True)
        get_metrics().record_message_sent(message.message_type.value, relayed=True)

        async def run() -> None:
            try:
                await self.deliver(relay_name, relayed, exclude=(sender,))
            except MessageDeliveryError as e:
                logger.warning("Relayed %s failed: %s", message.message_type.value, e)

        task = asyncio.create_task(run())
        self._relays.add(task)
        task.add_done_callback(self._relays.discard)

    async def join(self) -> None:
        """Wait for in-flight relays to finish."""
        while self._relays:
            await asyncio.gather(*list(self._relays))


class MessageEndpoint:
    """A context's handle for sending and receiving messages."""

    def __init__(self, bus: MessageBus, name: str) -> None:
        self._bus = bus
        self.name = name
        self._registrations: list[_Registration] = []
        self.closed = False

    async def send(self, message_type: MessageType, payload: Any = None) -> list[Any]:
        """
        Send a message to every reachable context.

        Returns:
            One response per reached context (None where no handler
            claimed the message)

        Raises:
            MessageDeliveryError: If any receiving handler failed.
        """
        message = Message(message_type=message_type, payload=payload, origin=self.name)
        logger.debug("Sending message %s", message.to_dict())
        get_metrics().record_message_sent(message_type.value)
        return await self._bus.deliver(self.name, message)

    def receive(
        self,
        handlers: Mapping[MessageType, MessageHandler],
        broadcast_unhandled: bool = False,
    ) -> StopHandle:
        """
        Register message handlers.

        A handler is called with ``(message, sender_name)`` and its return
        value (awaited if needed) becomes the response.

        Args:
            handlers: Handler per message type
            broadcast_unhandled: Re-emit messages no handler claimed to the
                contexts reachable from here

        Returns:
            Idempotent handle removing this registration
        """
        registration = _Registration(dict(handlers), broadcast_unhandled)
        self._registrations.append(registration)

        def stop() -> None:
            if registration in self._registrations:
                self._registrations.remove(registration)

        return stop

    def close(self) -> None:
        """Stop receiving; the endpoint is no longer reachable."""
        self.closed = True
        self._registrations.clear()

    async def handle(self, message: Message, sender: str) -> Any:
        """Run the handlers registered for a message and return the first response."""
        claimed = [
            r.handlers[message.message_type]
            for r in list(self._registrations)
            if message.message_type in r.handlers
        ]

        if not claimed:
            if not message.relayed and any(
                r.broadcast_unhandled for r in self._registrations
            ):
                self._bus.relay(self.name, message, sender)
            return None

        responses = []
        errors = []
        for handler in claimed:
            try:
                response = handler(message, sender)
                if inspect.isawaitable(response):
                    response = await response
            except Exception as e:
                logger.exception(
                    "Handler for %s failed in %s", message.message_type.value, self.name
                )
                errors.append(e)
                continue
            responses.append(response)

        if errors:
            raise errors[0]
        return responses[0]
