"""
Configuration management.

Loads settings from environment variables and .env file.
Prefix: HIERMEM_
"""

from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="HIERMEM_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Storage
    data_dir: Path = Field(default=Path("data"), description="Data storage directory")
    db_name: str = Field(default="memory.db", description="SQLite database name")

    # Engine
    auto_consolidation: bool = Field(default=True, description="Run consolidation periodically")
    consolidation_interval: float = Field(
        default=3600, gt=0, description="Seconds between consolidation runs"
    )
    level_policies: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Per-level overrides, e.g. {\"short_term\": {\"max_size\": 50}}",
    )

    # Backend
    auto_cleanup: bool = Field(default=True, description="Purge expired records periodically")
    cleanup_interval: float = Field(default=300, gt=0, description="Seconds between cleanups")
    max_memories: dict[str, int] | None = Field(
        default=None, description="Optional per-level hard cap enforced by the backend"
    )

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name


def get_settings() -> Settings:
    """Get settings instance."""
    return Settings()
