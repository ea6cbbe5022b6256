"""Application configuration helpers."""

from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_VAULT_PATH = PROJECT_ROOT / "data" / "vault"
DEFAULT_INDEX_DB_PATH = PROJECT_ROOT / "data" / "index.db"


class AppConfig(BaseModel):
    """Runtime configuration loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    vault_path: Path = Field(..., description="Root directory of the markdown vault")
    index_db_path: Path = Field(
        default=DEFAULT_INDEX_DB_PATH, description="SQLite file holding the link index"
    )
    model_api_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of an OpenAI-compatible chat completions API",
    )
    model_api_key: Optional[str] = Field(default=None, description="Bearer token for the model API")
    model_name: str = Field(default="gpt-4o-mini", description="Model used for synthesis")
    model_timeout_seconds: float = Field(default=60.0, gt=0)
    window_context_paragraphs: int = Field(
        default=1, ge=0, description="Paragraphs kept before each reference window"
    )
    trim_section_count: int = Field(
        default=5, ge=1, description="Sections kept by the LongContent strategy"
    )
    log_level: str = Field(default="INFO")

    @field_validator("vault_path", "index_db_path", mode="before")
    @classmethod
    def _normalize_path(cls, value: str | Path | None) -> Path:
        if value is None or value == "":
            raise ValueError("Path setting cannot be empty")
        path = value if isinstance(value, Path) else Path(value)
        return path.expanduser().resolve()

    @field_validator("model_api_key", mode="before")
    @classmethod
    def _clean_key(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown LOG_LEVEL: {value}")
        return level

    @property
    def model_configured(self) -> bool:
        return bool(self.model_api_key)


def _read_env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load and cache application configuration."""
    config = AppConfig(
        vault_path=_read_env("VAULT_PATH", str(DEFAULT_VAULT_PATH)),
        index_db_path=_read_env("INDEX_DB_PATH", str(DEFAULT_INDEX_DB_PATH)),
        model_api_url=_read_env("MODEL_API_URL", "https://api.openai.com/v1"),
        model_api_key=_read_env("MODEL_API_KEY"),
        model_name=_read_env("MODEL_NAME", "gpt-4o-mini"),
        model_timeout_seconds=float(_read_env("MODEL_TIMEOUT_SECONDS", "60")),
        window_context_paragraphs=int(_read_env("WINDOW_CONTEXT_PARAGRAPHS", "1")),
        trim_section_count=int(_read_env("TRIM_SECTION_COUNT", "5")),
        log_level=_read_env("LOG_LEVEL", "INFO"),
    )
    # Ensure the vault directory exists for downstream services.
    config.vault_path.mkdir(parents=True, exist_ok=True)
    return config


def reload_config() -> AppConfig:
    """Clear cached config (useful for tests) and reload."""
    get_config.cache_clear()
    return get_config()


__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "PROJECT_ROOT",
    "DEFAULT_VAULT_PATH",
    "DEFAULT_INDEX_DB_PATH",
]
