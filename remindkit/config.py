"""
config.py
─────────
Runtime settings, read from REMINDKIT_* environment variables or a .env file.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REMINDKIT_", env_file=".env", extra="ignore")

    data_dir: str = "./data"
    retention_days: int = 30
    completion_window_hours: float = 6
    dedup_ttl_seconds: int = 600
    snooze_minutes: int = 10
    tick_seconds: float = 1.0
    cors_allow_origins: List[str] = ["*"]
    log_level: str = "INFO"

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)

    @property
    def completion_window(self) -> timedelta:
        return timedelta(hours=self.completion_window_hours)

    @property
    def dedup_ttl(self) -> timedelta:
        return timedelta(seconds=self.dedup_ttl_seconds)

    @property
    def snooze(self) -> timedelta:
        return timedelta(minutes=self.snooze_minutes)


@lru_cache
def get_settings() -> Settings:
    return Settings()
