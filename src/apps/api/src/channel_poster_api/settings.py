"""API settings."""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """HTTP layer settings. Delivery settings live in the core package."""

    max_upload_mb: int = 10
    upload_dir: str = "/tmp/uploads"
    preview_rows: int = 10
    cors_origins: list[str] = ["*"]

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
