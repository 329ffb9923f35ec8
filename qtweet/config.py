"""QTweet configuration management."""

import logging

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional

logger = logging.getLogger("qtweet.config")


class QTweetSettings(BaseSettings):
    """Settings loaded from environment variables or .env file."""

    # Twitter stream
    twitter_bearer_token: Optional[str] = Field(default=None, description="Bearer token for the stream API")
    stream_url: str = Field(
        default="https://stream.twitter.com/1.1/statuses/filter.json",
        description="Filtered stream endpoint",
    )

    # Telegram delivery
    telegram_bot_token: Optional[str] = Field(default=None, description="Telegram bot token")

    # Subscriptions
    subscriptions_file: str = Field(default="subscriptions.json", description="JSON subscription list")

    # Reconnection (milliseconds)
    backoff_min_ms: int = Field(default=2000, description="First reconnect delay")
    backoff_max_ms: int = Field(default=16000, description="Reconnect delay ceiling")
    rate_limit_cooldown_ms: int = Field(default=30000, description="Fixed delay after a rate-limit error")
    watchdog_timeout_ms: int = Field(default=90000, description="Silence before the stream is recreated")

    # Formatting
    ping_hashtag: str = Field(default="qtweet", description="Hashtag that requests a ping")
    ping_text: str = Field(default="@everyone", description="Message sent ahead of pinged posts")
    unfurl_previews: bool = Field(default=True, description="Fetch link previews for text posts")
    unfurl_timeout: float = Field(default=10.0, description="Link preview fetch timeout (seconds)")

    debug: bool = Field(default=False, description="Debug mode")

    model_config = {"env_prefix": "QTWEET_", "env_file": ".env", "extra": "ignore"}


def load_settings() -> QTweetSettings:
    """Load settings from environment."""
    settings = QTweetSettings()

    if not settings.twitter_bearer_token:
        logger.warning("No stream credential configured (QTWEET_TWITTER_BEARER_TOKEN).")
    if not settings.telegram_bot_token:
        logger.warning("No Telegram bot token configured (QTWEET_TELEGRAM_BOT_TOKEN).")
    if settings.backoff_max_ms < settings.backoff_min_ms:
        logger.warning(
            f"backoff_max_ms ({settings.backoff_max_ms}) is below backoff_min_ms "
            f"({settings.backoff_min_ms}); using the minimum as ceiling"
        )
        settings.backoff_max_ms = settings.backoff_min_ms

    return settings
