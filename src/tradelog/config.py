"""
Application configuration using Pydantic Settings.

Loads environment variables from .env file. Shared by the API server and the
news ingestion worker.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_IMG_DOMAINS = (
    "cointelegraph.com,coindesk.com,ambcrypto.com,newsbtc.com,"
    "biztoc.com,wp.com,youtube.com"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 5050
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: str = "*"

    # Client bundle
    CLIENT_DIST_DIR: str = "dist"

    # News snapshot
    DATA_DIR: str = "server/data"
    NEWS_FILENAME: str = "news.json"

    # News API (both spellings accepted)
    NEWSAPI_KEY: str = Field(
        default="", validation_alias=AliasChoices("NEWSAPI_KEY", "NEWS_API_KEY")
    )
    NEWS_PAGE_SIZE: int = 30
    NEWS_TIMEOUT_SECONDS: float = 15.0

    # Worker
    WATCH: bool = False
    WORKER_INTERVAL_MIN: float = 10.0

    # CoinGecko
    COINGECKO_API_KEY: str = ""
    PRICE_TTL_SECONDS: float = 60.0
    PRICE_TIMEOUT_SECONDS: float = 10.0

    # Image proxy
    IMG_FRESH_TTL_SECONDS: float = 6 * 60 * 60
    IMG_STALE_TTL_SECONDS: float = 24 * 60 * 60
    IMG_MIN_BYTES: int = 128
    IMG_MAX_BYTES: int = 5 * 1024 * 1024
    IMG_TIMEOUT_SECONDS: float = 8.0
    IMG_ALLOWLIST_MODE: str = "subdomain"
    IMG_ALLOWED_DOMAINS: str = DEFAULT_IMG_DOMAINS

    @model_validator(mode="after")
    def _check_settings(self) -> "Settings":
        if self.IMG_ALLOWLIST_MODE not in ("subdomain", "exact"):
            raise ValueError("IMG_ALLOWLIST_MODE must be 'subdomain' or 'exact'")
        if self.IMG_STALE_TTL_SECONDS < self.IMG_FRESH_TTL_SECONDS:
            raise ValueError("IMG_STALE_TTL_SECONDS must be >= IMG_FRESH_TTL_SECONDS")
        if self.WORKER_INTERVAL_MIN <= 0:
            raise ValueError("WORKER_INTERVAL_MIN must be positive")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def img_allowed_domains_list(self) -> list[str]:
        """Parse the image allowlist into lowercase base domains."""
        return [
            domain.strip().lower().lstrip(".")
            for domain in self.IMG_ALLOWED_DOMAINS.split(",")
            if domain.strip()
        ]

    @property
    def news_path(self) -> Path:
        """Full path of the news snapshot file."""
        return Path(self.DATA_DIR) / self.NEWS_FILENAME


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
