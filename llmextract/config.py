"""Environment-driven settings for the extraction service."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


class Settings(BaseModel):
    """Runtime configuration resolved from environment variables."""

    database_url: str = "sqlite:///data/llmextract.db"
    log_level: str = "INFO"

    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    extract_llm_model: str = "openai/gpt-4o-mini"
    extract_llm_temperature: float = 0.0
    extract_llm_max_tokens: int = Field(default=2048, gt=0)
    extract_llm_timeout_s: float = Field(default=120.0, gt=0)

    extract_chunk_tokens: int = Field(default=2000, gt=0)
    extract_chunk_overlap_tokens: int = Field(default=0, ge=0)
    extract_concurrency: int = Field(default=4, gt=0)
    extract_retry_max: int = Field(default=3, ge=0)
    extract_backoff_s: float = Field(default=1.0, ge=0)
    extract_backoff_max_s: float = Field(default=30.0, ge=0)

    webhook_timeout_s: float = Field(default=10.0, gt=0)
    webhook_retry_max: int = Field(default=5, ge=0)
    webhook_backoff_s: float = Field(default=1.0, ge=0)
    webhook_backoff_max_s: float = Field(default=60.0, ge=0)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current process environment."""

        defaults = cls()
        values: dict[str, str] = {}
        for name in cls.model_fields:
            raw = _env(name.upper(), "")
            if raw:
                values[name] = raw
        return cls.model_validate({**defaults.model_dump(), **values})


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached settings instance."""

    return Settings.from_env()


def reset_settings_cache() -> None:
    """Drop cached settings so the next lookup re-reads the environment."""

    get_settings.cache_clear()


__all__ = ["PROJECT_ROOT", "Settings", "get_settings", "reset_settings_cache"]
