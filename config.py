"""
Configuration settings for learnloop-core.

Uses Pydantic Settings for environment variable management with .env file support.
All variables are prefixed with LEARNLOOP_ (e.g. LEARNLOOP_STORAGE_BACKEND=sqlite).
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LEARNLOOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    storage_backend: Literal["json", "sqlite"] = Field(
        default="json",
        description="Session gateway implementation",
    )
    data_dir: Path = Field(
        default=Path.home() / ".learnloop",
        description="Root directory for courses and sessions",
    )
    session_dir: Path | None = Field(
        default=None,
        description="Directory for JSON session documents (defaults to <data_dir>/sessions)",
    )
    sqlite_path: Path | None = Field(
        default=None,
        description="SQLite database file (defaults to <data_dir>/sessions.db)",
    )
    course_dir: Path | None = Field(
        default=None,
        description="Directory holding generated course JSON files",
    )

    # ========================================
    # Session
    # ========================================
    conversation_history_limit: int = Field(
        default=200,
        ge=1,
        description="Maximum conversation entries kept per session (oldest dropped)",
    )

    # ========================================
    # Scheduler (position-based spaced repetition)
    # ========================================
    scheduler_initial_ease: float = Field(
        default=2.5,
        description="Ease factor assigned to an item on first touch",
    )
    scheduler_min_ease: float = Field(
        default=1.3,
        description="Lower bound for the ease factor",
    )
    scheduler_max_ease: float = Field(
        default=4.0,
        description="Upper bound for the ease factor",
    )
    scheduler_success_bonus: float = Field(
        default=0.1,
        description="Ease increase after a successful attempt",
    )
    scheduler_failure_penalty: float = Field(
        default=0.2,
        description="Ease decrease after a failed attempt",
    )
    scheduler_success_threshold: int = Field(
        default=4,
        ge=0,
        le=5,
        description="Minimum comprehension score counted as a success",
    )

    # ========================================
    # Phase gates
    # ========================================
    gate_high_level_min_comprehension: int = Field(
        default=3,
        ge=0,
        le=5,
        description="Every high-level topic must reach this score before concept learning",
    )
    gate_max_unmastered_topic_ratio: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Share of unmastered topics tolerated before memorization",
    )
    gate_require_all_items_mastered: bool = Field(
        default=True,
        description="Leaving memorization requires every item of the concept mastered",
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

    @property
    def resolved_session_dir(self) -> Path:
        return self.session_dir or self.data_dir / "sessions"

    @property
    def resolved_sqlite_path(self) -> Path:
        return self.sqlite_path or self.data_dir / "sessions.db"

    @property
    def resolved_course_dir(self) -> Path:
        return self.course_dir or self.data_dir / "courses"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
