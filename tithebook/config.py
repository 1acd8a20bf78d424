"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

import os

# Persistent config path shared with the host application
APP_BASE_PATH = Path(os.environ.get(
    "TITHEBOOK_BASE_PATH",
    Path.home() / "Documents" / "tithebook"
))
ENV_FILE_PATH = APP_BASE_PATH / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        env_prefix="TITHEBOOK_",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_log_level: str = Field(default="INFO")
    log_file: Optional[Path] = Field(default=None)

    # Local durable store
    database_path: Path = Field(default=Path("./data/tithebook.db"))
    reports_dir: Path = Field(default=Path("./reports"))

    # Image pre-validation
    min_image_width: int = Field(default=800)
    min_image_height: int = Field(default=600)
    recommended_image_width: int = Field(default=1920)
    recommended_image_height: int = Field(default=1080)
    min_image_bytes: int = Field(default=100 * 1024)
    max_image_bytes: int = Field(default=20 * 1024 * 1024)

    # Member matching
    match_threshold: float = Field(default=0.8)
    match_tie_epsilon: float = Field(default=0.02)
    surname_weight: float = Field(default=0.6)
    suggestion_count: int = Field(default=3)

    # Amount validation
    member_deviation_multiple: float = Field(default=5.0)
    min_history_occurrences: int = Field(default=3)
    assembly_anomaly_multiple: float = Field(default=10.0)
    min_assembly_samples: int = Field(default=5)
    global_promotion_assemblies: int = Field(default=3)

    # Page sequencing
    duplicate_overlap_threshold: float = Field(default=0.8)
    duplicate_name_threshold: float = Field(default=0.8)
    merge_confidence_margin: float = Field(default=0.05)

    # Member order store
    snapshot_retention: int = Field(default=10)

    # Sync queue
    sync_max_retries: int = Field(default=3)
    sync_backoff_multiplier: float = Field(default=1.0)
    sync_backoff_max_seconds: float = Field(default=60.0)
    sync_debounce_seconds: float = Field(default=1.5)

    # OCR rate limiting (requests per window)
    ocr_rate_limit: int = Field(default=15)
    ocr_rate_window_seconds: float = Field(default=60.0)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
