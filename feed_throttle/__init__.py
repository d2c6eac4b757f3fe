"""Per-source feed throttling with cross-context state synchronization."""

__version__ = "0.1.0"
