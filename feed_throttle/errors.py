"""Exceptions raised by feed-throttle."""


class FeedThrottleError(Exception):
    """Base exception for feed-throttle errors."""


class CodecError(FeedThrottleError):
    """Raised when a stored collection cannot be decoded.

    Decoding is all-or-nothing: no partial collection is returned, and
    callers keep whatever snapshot they held before the failed call.
    """

    def __init__(self, message: str, row: int | None = None):
        super().__init__(message)
        self.row = row


class DiscoveryTimeoutError(FeedThrottleError):
    """Raised when source discovery gives up polling the document."""

    def __init__(self, timeout_ms: int, interval_ms: int, attempts_made: int):
        super().__init__(
            "Timed out trying to get the user's sources from the document "
            f"(timeout_ms={timeout_ms}, interval_ms={interval_ms}, "
            f"attempts_made={attempts_made})"
        )
        self.timeout_ms = timeout_ms
        self.interval_ms = interval_ms
        self.attempts_made = attempts_made


class MessageDeliveryError(FeedThrottleError):
    """Raised after a send when one or more receiving handlers failed.

    Every reachable endpoint has already been given the message by the
    time this is raised; ``responses`` holds what the others returned.
    """

    def __init__(self, message_type: str, errors: list[BaseException], responses: list):
        super().__init__(
            f"{len(errors)} handler(s) failed for message {message_type!r}: {errors[0]!r}"
        )
        self.message_type = message_type
        self.errors = errors
        self.responses = responses
