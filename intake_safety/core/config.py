"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application environment
    env: Literal["dev", "test", "staging", "prod"] = "dev"

    # Logging
    log_level: str = "INFO"

    # Safety rulesets (None = rulesets packaged with intake_safety)
    rulesets_dir: Path | None = None

    # Follow-up rounds before a still-incomplete intake goes to manual review
    max_follow_up_rounds: int = 2

    # Emergency guidance shown when an intake is blocked
    emergency_guidance_text: str = (
        "If you are experiencing a medical emergency, call 000 or go to your "
        "nearest emergency department now. For crisis support call Lifeline "
        "on 13 11 14 (24/7)."
    )
    emergency_guidance_enabled: bool = True

    # Shown when an intake cannot be screened automatically
    manual_review_message: str = (
        "We're unable to process this request automatically. "
        "A doctor will review your answers and contact you."
    )

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode."""
        return self.env == "dev"

    @property
    def is_prod(self) -> bool:
        """Check if running in production mode."""
        return self.env == "prod"

    @property
    def is_test(self) -> bool:
        """Check if running in test mode."""
        return self.env == "test"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
