"""
Circularity configuration management using pydantic-settings.

Analysis defaults with validation. Every field can be overridden through
environment variables prefixed with CIRCULARITY_ or a local .env file.
"""

import logging
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from circularity.schemas import PartnershipPolicy


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CIRCULARITY_",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Graph derivation
    partnership_policy: PartnershipPolicy = Field(
        default=PartnershipPolicy.BIDIRECTIONAL,
        description="How undirected partnership deals take part in loop/cycle detection",
    )
    max_cycle_length: int = Field(
        default=5,
        ge=3,
        le=5,
        description="Longest multi-party cycle to enumerate (companies)",
    )

    # Null model
    null_model_iterations: int = Field(
        default=500, ge=1, description="Randomized trials per null model run"
    )
    null_model_workers: Optional[int] = Field(
        default=None,
        ge=1,
        description="Worker processes for null model trials (None = CPU count)",
    )
    null_model_batch_size: int = Field(
        default=50, ge=1, description="Trials per worker batch"
    )
    null_model_time_budget_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Wall-clock budget; remaining trials are dropped when exceeded",
    )
    null_model_seed: Optional[int] = Field(
        default=None, description="Seed for reproducible null model runs"
    )

    # Significance testing
    significance_level: float = Field(
        default=0.05, gt=0, lt=1, description="p-value threshold for significance"
    )
    low_count_threshold: float = Field(
        default=5.0,
        ge=0,
        description="Null means below this use the empirical p-value",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the logging level name."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level


def get_settings() -> Settings:
    """Build a fresh settings object from the current environment."""
    return Settings()


# Global settings instance
settings = Settings()
