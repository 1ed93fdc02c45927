"""Configuration for the receipt mailer HTTP service."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """HTTP service settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    # Postgres
    DATABASE_URL: str

    # Auth
    WORKER_API_KEY: str

    # Uploads
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    ALLOWED_EXTENSIONS: tuple[str, ...] = ('.xls', '.xlsx', '.xlsm')

    # Logging
    LOG_JSON: bool = True


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
