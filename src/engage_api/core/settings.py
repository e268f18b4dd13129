from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./engage.db"
    database_echo: bool = False

    # Internal API security
    admin_api_key: str = ""

    # Probability tables
    reward_max_items: int = 20
    reward_min_items: int = 2
    reward_probability_tolerance: float = 0.001

    # Eligibility windows are bucketed by calendar day in this timezone
    reward_day_timezone: str = "UTC"

    # Tracing
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None

    # Ledger history
    ledger_history_default_page_size: int = 25
    ledger_history_max_page_size: int = 100

    # Recurring jobs (ledger audit sweep)
    job_scheduler_enabled: bool = False
    job_schedule_path: str = "config/schedules.toml"

    @field_validator("reward_max_items")
    @classmethod
    def _validate_max_items(cls, value: int) -> int:
        if value < 2:
            raise ValueError("reward_max_items must allow at least two items")
        return value

    @field_validator("reward_day_timezone", mode="before")
    @classmethod
    def _normalize_timezone(cls, value: object) -> str:
        if value is None:
            return "UTC"
        text = str(value).strip()
        return text or "UTC"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
