"""Environment-driven settings for the API gateway."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

BASE_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=BASE_DIR / ".env")


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    gemini_api_key: str = Field(default_factory=lambda: os.getenv("GEMINI_API_KEY", "").strip())
    gemini_model: str = Field(
        default_factory=lambda: os.getenv("GEMINI_MODEL", "gemini-2.5-flash").strip()
    )
    check_interval_sec: float = Field(
        default_factory=lambda: float(os.getenv("COLLISION_CHECK_INTERVAL_SEC", "2.0")),
        gt=0.0,
    )
    collision_debug: bool = Field(default_factory=lambda: _env_flag("COLLISION_DEBUG"))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").strip().upper())


@lru_cache
def get_settings() -> Settings:
    return Settings()
