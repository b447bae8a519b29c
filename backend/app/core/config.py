"""
Environment configuration for the alert service.

Loaded once through pydantic-settings (env var > .env file > default).
The scrape timings, source toggles and VAPID keys are the values an
operator normally touches; everything else has a working local default.

Usage:
    from backend.app.core.config import settings
    print(settings.SCRAPE_INTERVAL_SECONDS)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_SCRAPE_INTERVAL_SECONDS = 60


class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Beacon Live Alerts"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 5000

    # ── CORS ──
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5000"]
    CORS_ALLOW_ALL: bool = True

    # ── Durable store (manual alerts + user directory) ──
    DATABASE_URL: str = "sqlite+aiosqlite:///./beacon.db"
    DATABASE_ECHO: bool = False

    # ── Live refresh ──
    SCHEDULER_ENABLED: bool = True
    SCRAPE_INTERVAL_SECONDS: int = 30 * 60
    SCRAPE_WARMUP_SECONDS: int = 60
    INCLUDE_DEMO_ALERTS: bool = True
    # Source ids to scrape; None keeps each source's own enabled flag
    ENABLED_SOURCES: Optional[List[str]] = None
    SCRAPER_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    )

    # ── Web Push ──
    VAPID_PUBLIC_KEY: Optional[str] = None
    VAPID_PRIVATE_KEY: Optional[str] = None
    VAPID_EMAIL: Optional[str] = None
    PUSH_TIMEOUT_SECONDS: float = 10.0

    @field_validator("SCRAPE_INTERVAL_SECONDS")
    @classmethod
    def _interval_floor(cls, value: int) -> int:
        if value < MIN_SCRAPE_INTERVAL_SECONDS:
            raise ValueError(
                f"SCRAPE_INTERVAL_SECONDS must be at least {MIN_SCRAPE_INTERVAL_SECONDS}"
            )
        return value

    @field_validator("SCRAPE_WARMUP_SECONDS")
    @classmethod
    def _warmup_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("SCRAPE_WARMUP_SECONDS cannot be negative")
        return value

    @field_validator("ENABLED_SOURCES")
    @classmethod
    def _lower_source_ids(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        return [v.strip().lower() for v in value if v.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def push_configured(self) -> bool:
        return bool(self.VAPID_PUBLIC_KEY and self.VAPID_PRIVATE_KEY and self.VAPID_EMAIL)


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
