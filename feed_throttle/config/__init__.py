"""Application configuration."""

from feed_throttle.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
