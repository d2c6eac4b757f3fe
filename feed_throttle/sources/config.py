"""Configuration for source discovery."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from feed_throttle.sources.identity import DEFAULT_BASE_URL


class DiscoveryConfig(BaseSettings):
    """Settings for polling the document for the user's source list."""

    model_config = SettingsConfigDict(
        env_prefix="DISCOVERY_",
        case_sensitive=False,
        extra="ignore",
    )

    interval_seconds: float = Field(
        default=0.1,
        gt=0.0,
        description="Delay between attempts to read the source list",
    )
    timeout_seconds: float | None = Field(
        default=None,
        ge=0.0,
        description="Give up after this long (None = keep trying forever)",
    )
    base_url: str = Field(
        default=DEFAULT_BASE_URL,
        description="Origin used to resolve relative source links",
    )
    desktop_menu_filter_selector: str = "#header-subreddit-filter"
    desktop_link_selector: str = 'a[href^="/r/"]'
    mobile_link_selector: str = "nav.OverlayMenu li a"
