"""Runtime configuration."""

from __future__ import annotations

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings, read from ``PRODUCTIVITY_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="PRODUCTIVITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = "sqlite:///productivity.db"
    # Single timezone used to bucket time logs, todos and metrics into days.
    day_timezone: str = "UTC"
    default_daily_goal_hours: float = 8.0
    log_level: str = "INFO"
    sql_echo: bool = False

    @field_validator("day_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    @field_validator("default_daily_goal_hours")
    @classmethod
    def _goal_in_day(cls, value: float) -> float:
        if not 0 <= value <= 24:
            raise ValueError("default_daily_goal_hours must be between 0 and 24")
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.day_timezone)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
