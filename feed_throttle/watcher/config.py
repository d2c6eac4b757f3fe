"""Configuration for the feed item watcher."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from feed_throttle.sources.identity import DEFAULT_BASE_URL


class WatcherConfig(BaseSettings):
    """Selectors used to find feed items and their sources in the page."""

    model_config = SettingsConfigDict(
        env_prefix="WATCHER_",
        case_sensitive=False,
        extra="ignore",
    )

    container_selector: str = Field(
        default='[class*="ListingLayout"]',
        description="Element whose descendants are the feed items",
    )
    container_poll_interval_seconds: float = Field(
        default=0.05,
        gt=0.0,
        description="Delay between lookups while waiting for the container",
    )
    item_selector: str = Field(
        default=".Post",
        description="Marker of a feed item",
    )
    wrapper_tag: str = Field(
        default="div",
        description="Tag of the added subtrees that may wrap an item",
    )
    anchor_selector: str = Field(
        default='a[data-click-id="subreddit"]',
        description="Link inside an item pointing at the item's source",
    )
    base_url: str = Field(
        default=DEFAULT_BASE_URL,
        description="Origin used to resolve relative source links",
    )
