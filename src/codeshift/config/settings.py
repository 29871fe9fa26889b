"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "CodeShift"
    app_env: str = "dev"
    app_debug: bool = False
    history_backend: str = "memory"
    database_url: str = ""
    history_page_size: int = Field(default=50, ge=1, le=500)
    retention_days: int = Field(default=30, ge=1)
    llm_model: str = "gemini-2.5-flash"
    llm_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    llm_timeout_s: float = Field(default=60.0, ge=0.5)
    gemini_api_key: str = ""
    session_cookie_name: str = "codeshift_uid"

    model_config = SettingsConfigDict(
        env_prefix="CODESHIFT_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")

    def resolved_gemini_api_key(self) -> str:
        return self.gemini_api_key or os.getenv("GEMINI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
