"""
Configuration management for watchflow.

Uses pydantic-settings to load configuration from environment variables
(prefixed with ``WATCHFLOW_``) and .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Pipeline Configuration
    pipeline_name: str = "<UNNAMED>"
    batch_interval: float = 0.3  # seconds
    verbose: bool = False
    log_level: str = "INFO"

    # Path Resolution
    search_paths: str = ""

    # Worker Configuration
    rescan_workers: int = 8

    # Observer Configuration
    use_polling: bool = False
    poll_interval: float = 1.0  # seconds

    model_config = SettingsConfigDict(
        env_prefix="WATCHFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def get_search_paths(self) -> list[Path]:
        """Parse search paths into list of Paths."""
        return [
            Path(p.strip()).expanduser()
            for p in self.search_paths.split(',')
            if p.strip()
        ]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
