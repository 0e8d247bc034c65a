from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    database_url: str = "sqlite+aiosqlite:///./loyalty.db"
    redis_url: str = "redis://localhost:6379/0"

    # Points ledger
    points_earn_rate: Decimal = Decimal("0.10")
    points_validity_months: int = 6
    expiring_soon_window_days: int = 7
    sweep_notification_batch_size: int = 50

    @field_validator("points_earn_rate", mode="before")
    @classmethod
    def _parse_earn_rate(cls, value: object) -> Decimal:
        if value is None or value == "":
            return Decimal("0.10")
        return Decimal(str(value))

    # WhatsApp Cloud API (simulator mode when token or phone id is missing)
    whatsapp_api_token: str | None = None
    whatsapp_phone_number_id: str | None = None
    whatsapp_api_version: str = "v21.0"
    whatsapp_api_base_url: str = "https://graph.facebook.com"
    whatsapp_timeout_seconds: float = 10.0

    # Aggregate statistics cache
    stats_cache_enabled: bool = False
    stats_cache_ttl_seconds: int = 180
    stats_cache_keys: list[str] = Field(
        default_factory=lambda: ["stats:dashboard:main"]
    )

    @field_validator("stats_cache_keys", mode="before")
    @classmethod
    def _parse_cache_keys(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []

    # Sweep scheduler
    ledger_scheduler_enabled: bool = False
    ledger_schedule_path: str = "config/schedules.toml"

    # Scheduler trigger security
    cron_api_key: str = ""


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
