"""
Configuration settings for interactive-flashcards.

Uses Pydantic Settings for environment variable management with .env file support.
The OpenRouter credential is optional: without it the quiz runs with AI
evaluation disabled.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from flashcards.ai.client import (
    DEFAULT_BASE_URL,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    ModelConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # AI Evaluation (OpenRouter)
    # ========================================
    openrouter_api_key: str | None = Field(
        default=None,
        description="OpenRouter API key; evaluation is disabled when unset",
    )
    openrouter_model: str = Field(
        default=DEFAULT_MODEL,
        description="Model used for grading answers",
    )
    openrouter_base_url: str = Field(
        default=DEFAULT_BASE_URL,
        description="OpenRouter API base URL",
    )
    ai_temperature: float = Field(
        default=DEFAULT_TEMPERATURE,
        description="Sampling temperature for grading",
    )
    ai_max_tokens: int = Field(
        default=DEFAULT_MAX_TOKENS,
        description="Maximum tokens in a grading reply",
    )
    evaluation_strict_json: bool = Field(
        default=False,
        description="Require the whole reply to be a single JSON object",
    )

    # ========================================
    # Storage
    # ========================================
    deck_dir: Path = Field(
        default=Path("decks"),
        description="Directory scanned for CSV decks",
    )
    data_dir: Path = Field(
        default=Path.home() / ".local" / "share" / "interactive-flashcards",
        description="Directory holding the session database and logs",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="DEBUG",
        description="Verbosity of the debug log file",
    )
    log_file: str | None = Field(
        default="ai_debug.log",
        description="Log file name inside data_dir (None disables the file sink)",
    )

    # ========================================
    # Interactive loop
    # ========================================
    ui_tick_seconds: float = Field(
        default=0.25,
        description="How often the quiz loop polls for evaluation results",
    )

    def has_ai_configured(self) -> bool:
        """Check if an OpenRouter credential is available."""
        return bool(self.openrouter_api_key)

    def get_model_config(self) -> ModelConfig:
        """Model configuration passed to the evaluation client."""
        return ModelConfig(
            model=self.openrouter_model,
            temperature=self.ai_temperature,
            max_tokens=self.ai_max_tokens,
        )

    def get_db_path(self) -> Path:
        return self.data_dir / "flashcards.db"

    def get_log_path(self) -> Path | None:
        if not self.log_file:
            return None
        return self.data_dir / self.log_file


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
