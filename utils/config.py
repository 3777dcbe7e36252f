"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to all environment variables with validation.

Usage:
    from utils.config import settings

    keys = settings.api_keys
    ceiling = settings.END_ACCOUNT_ID
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Steam API Configuration
    STEAM_API_KEYS: str = Field(default="", description="Comma-separated, ordered list of API keys")
    STEAM_API_URL: str = Field(
        default="https://api.steampowered.com/ISteamUser/GetPlayerSummaries/v0002/"
    )
    STEAM_REQUEST_TIMEOUT: float = Field(default=10.0, gt=0)
    STEAM_MAX_ATTEMPTS: int = Field(default=3, ge=1)

    # Crawl Configuration
    END_ACCOUNT_ID: int = Field(default=1224000000, ge=0, le=2**32, description="Exclusive; at most 2^32")
    REQUESTS_PER_INVOCATION: int = Field(default=2, ge=1)
    BATCH_DELAY_SECONDS: float = Field(default=5.0, ge=0)
    CURSOR_COMMIT: Literal["batch", "run"] = Field(default="batch")
    KEY_ROTATION: Literal["none", "round_robin"] = Field(default="round_robin")

    # State / Storage Configuration
    STATE_BACKEND: Literal["redis", "sqlite"] = Field(default="redis")
    STATE_TIMEOUT: float = Field(default=5.0, gt=0)
    WRITE_TIMEOUT: float = Field(default=10.0, gt=0)
    SQLITE_PATH: str = Field(default="data/db/steam_users.db")
    LOCATION_TABLE_PATH: str = Field(default="", description="Empty means the bundled table")

    # Redis Configuration
    REDIS_URL: str = Field(default="redis://redis:6379/0")
    REDIS_MAX_CONNECTIONS: int = Field(default=10)
    REDIS_KEY_PREFIX: str = Field(default="steamIdCrawler")

    # Scheduler Configuration
    RUN_ONCE: bool = Field(default=False)
    RUN_ON_START: bool = Field(default=False)
    SCHEDULE_INTERVAL_SECONDS: int = Field(default=24 * 60 * 60, gt=0)
    CYCLE_JITTER_SECONDS: float = Field(default=60.0, ge=0)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: Literal["json", "text"] = Field(default="json")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def api_keys(self) -> list[str]:
        """Ordered credential list parsed from STEAM_API_KEYS."""
        return [key.strip() for key in self.STEAM_API_KEYS.split(",") if key.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
