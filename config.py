"""
Configuration settings for orto-scheduler.

Uses Pydantic Settings for environment variable management with .env file support.
Every variable is prefixed with ORTO_, e.g. ORTO_LOG_LEVEL=DEBUG.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ORTO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Spaced Repetition
    # ========================================
    srs_initial_ease_factor: float = Field(
        default=2.5,
        description="Ease factor of a new card",
    )
    srs_min_ease_factor: float = Field(
        default=1.3,
        description="Lower ease factor bound",
    )
    srs_max_ease_factor: float = Field(
        default=2.5,
        description="Upper ease factor bound",
    )
    srs_new_card_intervals: list[int] = Field(
        default=[1, 3, 7],
        description="Fixed intervals (days) for the first reviews of a card",
    )
    srs_leech_threshold: int = Field(
        default=8,
        description="Failures (grade < 2) before a card is flagged as a leech",
    )

    # ========================================
    # Difficulty Bands
    # ========================================
    band_promotion_streak: int = Field(
        default=3,
        description="Days at the current band before promotion",
    )
    band_promotion_correct_rate: float = Field(
        default=0.75,
        description="Minimum rolling correct rate for promotion",
    )
    band_promotion_max_hint_usage: float = Field(
        default=1.5,
        description="Maximum average hints per item for promotion",
    )
    band_demotion_difficult_days: int = Field(
        default=2,
        description="Difficult days in the window that trigger demotion",
    )
    band_demotion_correct_rate: float = Field(
        default=0.5,
        description="Window correct rate below which the band drops",
    )
    band_performance_smoothing: float = Field(
        default=0.3,
        description="EMA weight of today's performance",
    )

    # ========================================
    # Domain Gate
    # ========================================
    gate_mini_assessment_passing_score: float = Field(
        default=0.8,
        description="Mini-OSCE passing score (0-1)",
    )
    gate_retention_min_stability: float = Field(
        default=0.7,
        description="Average stability required of recent / sampled cards",
    )
    gate_retention_min_cards: int = Field(
        default=10,
        description="Reviewed cards required before stability counts",
    )
    gate_retention_delay_days: int = Field(
        default=7,
        description="Days between scheduling and running a retention check",
    )
    gate_complication_case_min_band: str = Field(
        default="E",
        description="Lowest band at which a complication case counts",
    )

    # ========================================
    # Daily Mix
    # ========================================
    target_minutes_per_day: int = Field(
        default=30,
        description="Default session length in minutes",
    )
    minutes_per_item: float = Field(
        default=2.0,
        description="Average minutes per item, converts budgets to item counts",
    )
    mix_new_content_ratio: float = Field(
        default=0.6,
        description="Share of the session for new primary-domain content",
    )
    mix_interleaving_ratio: float = Field(
        default=0.2,
        description="Share of the session for a neighbour or recall domain",
    )
    mix_srs_review_ratio: float = Field(
        default=0.2,
        description="Share of the session for due reviews",
    )

    # ========================================
    # Domain Selection
    # ========================================
    domain_weight_neighbor: float = Field(
        default=0.7,
        description="Probability of suggesting a neighbouring domain next",
    )
    domain_weight_other: float = Field(
        default=0.2,
        description="Probability of suggesting any other open domain",
    )
    domain_weight_recall: float = Field(
        default=0.1,
        description="Probability of revisiting a completed domain",
    )
    random_seed: int | None = Field(
        default=None,
        description="Seed for reproducible domain and content choices",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
