"""Settings and logging setup for the Dev Events Hub."""

import logging
import sys
from functools import lru_cache

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    #: e.g. "sqlite:///events.db" or a plain file path.
    database_uri: str

    #: Where server-rendered pages fetch the JSON API from.
    base_url: str = "http://localhost:8000"

    log_level: str = "INFO"
    seed_on_startup: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(
            "Please define the DATABASE_URI environment variable "
            "(or add it to your .env file)"
        ) from exc


def setup_logging(level: str = "INFO") -> None:
    """Send application logs to stdout with timestamps."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
