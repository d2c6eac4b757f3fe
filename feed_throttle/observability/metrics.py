"""
Prometheus metrics for monitoring feed throttling.

Defines and exposes metrics for:
- Skip/show decisions per item
- Store writes and decode failures
- Message deliveries between contexts
- Number of tracked feeds

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    start_http_server,
)

from feed_throttle.config.settings import get_settings

logger = logging.getLogger(__name__)


class MetricsCollector:
    """
    Prometheus metrics collector for feed-throttle.

    Usage:
        metrics = get_metrics()
        metrics.record_decision(skipped=True)
        metrics.record_store_write("StorageKey:feedStates")
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.items_decided = Counter(
            "feed_throttle_items_decided_total",
            "Total feed items run through the decision engine",
            ["outcome"],  # shown, skipped
        )

        self.items_ignored = Counter(
            "feed_throttle_items_ignored_total",
            "Feed items seen by the watcher without a matching source or feed state",
        )

        self.store_writes = Counter(
            "feed_throttle_store_writes_total",
            "Full-collection writes to the persistent store",
            ["key"],
        )

        self.decode_failures = Counter(
            "feed_throttle_decode_failures_total",
            "Stored collections that failed to decode",
            ["key"],
        )

        self.messages_sent = Counter(
            "feed_throttle_messages_sent_total",
            "Messages sent between contexts",
            ["message_type", "relayed"],
        )

        self.tracked_feeds = Gauge(
            "feed_throttle_tracked_feeds",
            "Number of feed states in the persisted collection",
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info("Prometheus metrics server started on port %d", port)

    # Convenience methods

    def record_decision(self, skipped: bool) -> None:
        """Record the outcome of one skip/show decision."""
        self.items_decided.labels(outcome="skipped" if skipped else "shown").inc()

    def record_ignored_item(self) -> None:
        """Record an item the watcher could not join against state."""
        self.items_ignored.inc()

    def record_store_write(self, key: str) -> None:
        """Record a full-collection write for a storage key."""
        self.store_writes.labels(key=key).inc()

    def record_decode_failure(self, key: str) -> None:
        """Record a stored value that could not be decoded."""
        self.decode_failures.labels(key=key).inc()

    def record_message_sent(self, message_type: str, relayed: bool = False) -> None:
        """Record a message leaving a context."""
        self.messages_sent.labels(
            message_type=message_type, relayed=str(relayed).lower()
        ).inc()

    def set_tracked_feeds(self, count: int) -> None:
        """Set the number of tracked feed states."""
        self.tracked_feeds.set(count)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
