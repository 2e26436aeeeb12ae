"""Core settings."""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Delivery, retry and retention settings.

    Every field can be overridden from the environment (``BOT_TOKEN``,
    ``MESSAGE_DELAY_SECONDS`` and so on) or from a ``.env`` file.
    """

    bot_token: str | None = None
    channel_id: str | None = None
    telegram_api_url: str = "https://api.telegram.org"

    message_delay_seconds: float = 2.0
    max_attempts: int = 5
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 30.0
    rate_limit_margin_seconds: float = 1.0
    default_retry_after_seconds: int = 30
    request_timeout_seconds: float = 30.0

    retention_seconds: float = 600.0
    max_log_entries: int = 500
    subscriber_queue_size: int = 1000

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
