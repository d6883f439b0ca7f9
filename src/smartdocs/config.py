"""
Configuration management for SmartDocs.

Loads settings from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ModelPrice(BaseModel):
    """USD price per 1K tokens for one model."""

    prompt: float = Field(ge=0)
    completion: float = Field(ge=0)


# Known model pricing, per 1K tokens
DEFAULT_MODEL_PRICING: dict[str, ModelPrice] = {
    "gpt-4-turbo-preview": ModelPrice(prompt=0.01, completion=0.03),
    "gpt-4": ModelPrice(prompt=0.03, completion=0.06),
    "gpt-3.5-turbo": ModelPrice(prompt=0.0005, completion=0.0015),
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    # ==========================================================================
    # LLM API Keys
    # ==========================================================================
    openai_api_key: str = Field(default="", description="OpenAI API key")
    anthropic_api_key: str = Field(default="", description="Anthropic API key")

    # ==========================================================================
    # LLM Configuration
    # ==========================================================================
    llm_provider: Literal["openai", "anthropic"] = "openai"
    llm_model: str = "gpt-4-turbo-preview"
    fallback_llm_provider: Literal["openai", "anthropic"] | None = None
    fallback_llm_model: str | None = None
    llm_timeout: int = 60

    # ==========================================================================
    # Retry Policy
    # ==========================================================================
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_multiplier: float = Field(default=2.0, ge=1)

    # ==========================================================================
    # Database
    # ==========================================================================
    database_url: str = "sqlite:///smartdocs.db"
    database_echo: bool = False

    # ==========================================================================
    # Cost Tracking
    # ==========================================================================
    model_pricing: dict[str, ModelPrice] = Field(
        default_factory=lambda: dict(DEFAULT_MODEL_PRICING)
    )

    # ==========================================================================
    # Knowledge Graph / Consistency
    # ==========================================================================
    suggestion_limit: int = 5
    auto_apply_threshold: float = Field(default=0.9, ge=0, le=1)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
