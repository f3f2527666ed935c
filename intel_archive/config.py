"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "Intel Archive API"
    app_version: str = "1.0.0"
    debug: bool = False

    # API
    api_prefix: str = "/api"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Storage
    storage_backend: Literal["json", "sqlite"] = "json"
    archive_path: Path = Path("instance/archive.json")
    database_url: str = "sqlite:///./instance/archive.db"
    state_path: Path = Path("instance/sync_state.json")
    store_lock_timeout: float | None = None  # None waits forever

    # LLM (Gemini)
    gemini_api_key: str | None = None
    extraction_model: str = "gemini-2.5-flash"
    vision_model: str = "gemini-2.5-flash"
    extraction_language: str = "en"
    max_content_chars: int = 25000

    # Ingestion
    page_delay_seconds: float = 2.0  # Courtesy delay between pages (429 avoidance)
    source_cooldown_seconds: float = 3.0
    rate_limit_max_retries: int = 3
    rate_limit_backoff_seconds: float = 2.0
    fetch_timeout_seconds: float = 20.0
    fetch_proxies: list[str] = []  # URL templates, e.g. "https://proxy.example/?url={url}"
    preferred_sources: list[str] = [
        "https://t.me/DEJradio",
        "https://t.me/IranintlTV",
        "https://t.me/Farsi_Iranwire",
        "https://t.me/haalvsh",
    ]
    default_sync_interval_minutes: int = 120

    # Matching thresholds (degrees)
    spatial_tight_threshold: float = 0.002
    spatial_manual_threshold: float = 0.05

    # Redis (for ARQ task queue)
    redis_url: str = "redis://localhost:6379"
    sync_check_minutes: int = 10

    # Telegram notifications
    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = None

    # Logging
    log_level: str = "INFO"
    log_file: Path | None = Path("logs/intel_archive.log")
    log_rotation: str = "10 MB"
    log_retention_days: int = 30

    @property
    def database_path(self) -> Path:
        """Extract the database file path from the URL."""
        path_str = self.database_url.replace("sqlite:///", "")
        return Path(path_str)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
