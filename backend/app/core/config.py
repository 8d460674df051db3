from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.domain.models import SourceTag


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///data/willow.db",
        description="SQLAlchemy compatible database URL backing the daily store",
    )
    polymarket_gamma_url: AnyUrl = Field(
        default="https://gamma-api.polymarket.com",
        description="Base URL for the Polymarket Gamma market listing API",
    )
    polymarket_clob_url: AnyUrl = Field(
        default="https://clob.polymarket.com",
        description="Base URL for the Polymarket CLOB API (midpoint lookups)",
    )
    kalshi_base_url: AnyUrl = Field(
        default="https://api.elections.kalshi.com/trade-api/v2",
        description="Base URL for the Kalshi public trade API",
    )
    prophet_arena_url: AnyUrl = Field(
        default="https://www.prophetarena.co/",
        description="Landing page linked from the Prophet Arena placeholder record",
    )
    adapter_timeout_seconds: float = Field(
        default=5.0,
        description="Upper bound in seconds on one source adapter call, secondary lookups included",
        gt=0,
    )
    daily_candidate_limit: int = Field(
        default=120,
        description="Per-source candidate pool size fetched when building the daily set",
        ge=1,
    )
    daily_target_count: int = Field(
        default=8, description="Number of items in the daily set", ge=0
    )
    daily_quota_per_source: int = Field(
        default=4,
        description="Items reserved per prioritized source before topping up the daily set",
        ge=0,
    )
    daily_source_priority: list[str] | str = Field(
        default_factory=lambda: ["polymarket", "kalshi"],
        description="Comma-separated list or array of source tags receiving a daily quota, in order",
    )
    daily_retention_days: int = Field(
        default=5, description="Days a daily set is kept before it expires", ge=1
    )
    daily_timezone: str = Field(
        default="UTC",
        description="IANA timezone defining the calendar day of the daily set",
    )
    admin_token: str | None = Field(
        default=None,
        description="Shared secret required to force regeneration of the daily set",
    )

    @field_validator("daily_source_priority", mode="before")
    @classmethod
    def _parse_source_priority(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            tokens = [token.strip().lower() for token in value.split(",") if token.strip()]
        elif isinstance(value, (list, tuple)):
            tokens = [str(item).strip().lower() for item in value if str(item).strip()]
        else:
            raise ValueError(
                "DAILY_SOURCE_PRIORITY must be provided as a list or comma-separated string"
            )
        known = {tag.value for tag in SourceTag}
        unknown = [token for token in tokens if token not in known]
        if unknown:
            raise ValueError(
                f"DAILY_SOURCE_PRIORITY contains unknown sources: {', '.join(unknown)}"
            )
        return tokens

    @field_validator("daily_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"DAILY_TIMEZONE '{value}' is not a known IANA timezone") from exc
        return value

    @field_validator("admin_token", mode="before")
    @classmethod
    def _blank_token_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def resolved_database_url(self) -> str:
        value = str(self.database_url)
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]
        return value

    @property
    def daily_zone(self) -> ZoneInfo:
        return ZoneInfo(self.daily_timezone)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
