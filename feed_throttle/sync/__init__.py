"""Cross-context synchronization and the three execution contexts."""

from feed_throttle.sync.coordinator import CoordinatorContext
from feed_throttle.sync.page import PageContext
from feed_throttle.sync.settings_view import SettingsContext
from feed_throttle.sync.synchronizer import ContextState, Synchronizer

__all__ = [
    "ContextState",
    "CoordinatorContext",
    "PageContext",
    "SettingsContext",
    "Synchronizer",
]
