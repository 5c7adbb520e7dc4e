import json
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ShortNoticeTierSetting(BaseModel):
    max_hours: float = Field(gt=0)
    charge: float = Field(ge=0)


DEFAULT_SHORT_NOTICE_TIERS = (
    '[{"max_hours": 12, "charge": 50}, {"max_hours": 24, "charge": 30}, {"max_hours": 48, "charge": 15}]'
)


class Settings(BaseSettings):
    app_name: str = "cleanquote"
    app_env: Literal["dev", "prod"] = Field("dev")
    pricing_config_path: str = Field("pricing/default_v1.json")
    pricing_source: Literal["file", "db"] = Field("file")
    database_url: str = Field("sqlite+aiosqlite:///./cleanquote.db")
    metrics_enabled: bool = Field(True)
    metrics_token: str | None = Field(None)
    quote_timezone: str = Field("Europe/London")
    minimum_booking_hours: float = Field(2.0)
    default_domestic_hourly_rate: float = Field(22.0)
    short_notice_tiers_raw: str = Field(DEFAULT_SHORT_NOTICE_TIERS, validation_alias="short_notice_tiers")
    override_epsilon_hours: float = Field(0.001)

    model_config = SettingsConfigDict(env_file=".env", enable_decoding=False, populate_by_name=True)

    @field_validator("minimum_booking_hours", "default_domestic_hourly_rate")
    @classmethod
    def validate_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("quote_timezone")
    @classmethod
    def validate_quote_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    @field_validator("override_epsilon_hours")
    @classmethod
    def validate_epsilon(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("override_epsilon_hours must be positive")
        return value

    @field_validator("short_notice_tiers_raw", mode="before")
    @classmethod
    def normalize_tiers_raw(cls, value: object) -> str:
        if value is None:
            return DEFAULT_SHORT_NOTICE_TIERS
        if isinstance(value, str):
            return value
        return json.dumps(value)

    @model_validator(mode="after")
    def validate_prod_settings(self) -> "Settings":
        if not self.short_notice_tiers:
            raise ValueError("SHORT_NOTICE_TIERS must define at least one tier")
        if self.app_env != "prod":
            return self
        if self.metrics_enabled and (not self.metrics_token or not self.metrics_token.strip()):
            raise ValueError("METRICS_TOKEN is required when METRICS_ENABLED=true in prod")
        return self

    @property
    def short_notice_tiers(self) -> list[ShortNoticeTierSetting]:
        stripped = self.short_notice_tiers_raw.strip()
        if not stripped:
            return []
        parsed = json.loads(stripped)
        if not isinstance(parsed, list):
            raise ValueError("SHORT_NOTICE_TIERS must be a JSON list")
        tiers = [ShortNoticeTierSetting.model_validate(entry) for entry in parsed]
        return sorted(tiers, key=lambda tier: tier.max_hours)


settings = Settings()
