# backend/studyroom/core/config.py
import logging
import os
from pathlib import Path
from typing import Any, List

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    secret_key: SecretStr = Field(
        default=SecretStr("dev-only-secret-key-change-me"),
        description="Secret key used to verify identity-provider bearer tokens",
    )
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 720  # 12 hours

    # Admin-email fallback rule for principals without an explicit role claim
    # Raw value - DO NOT USE DIRECTLY! Use the admin_emails property instead
    admin_emails_raw: str = Field(
        default="",
        alias="admin_emails",
        description="Comma-separated emails treated as admin when no role claim is present",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./studyroom.db",
        description="SQLAlchemy database URL for the session store",
    )
    database_echo: bool = False

    # Scheduling policy
    scheduling_timezone: str = Field(
        default="Australia/Sydney",
        description="IANA zone used for business-hour and same-day checks",
    )
    scheduling_buffer_minutes: int = Field(default=10, ge=0)
    tutoring_start_hour: int = Field(default=7, ge=0, le=24)
    tutoring_end_hour: int = Field(default=20, ge=0, le=24)
    max_session_minutes: int = Field(
        default=120, gt=0, description="Duration ceiling for create and series updates"
    )
    reschedule_max_session_minutes: int = Field(
        default=240, gt=0, description="Duration ceiling for the single-session reschedule flow"
    )
    min_session_minutes: int = Field(
        default=15, ge=0, description="Duration floor for every scheduling mutation"
    )
    validate_series_shift: bool = Field(
        default=True,
        description="Run scheduling validation for every occurrence of a series shift",
    )

    # Cancellation policy
    late_cancellation_hours: int = Field(default=12, ge=0)

    # Per-tutor scheduling lock
    redis_url: str = "redis://localhost:6379/0"
    scheduling_lock_enabled: bool = False
    scheduling_lock_ttl_seconds: int = Field(default=30, gt=0)
    lock_namespace: str = "studyroom"

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @property
    def admin_emails(self) -> List[str]:
        return [token.strip().lower() for token in self.admin_emails_raw.split(",") if token.strip()]

    @field_validator("scheduling_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown scheduling timezone: {value}") from exc
        return value

    @model_validator(mode="after")
    def _check_tutoring_window(self) -> "Settings":
        if self.tutoring_end_hour <= self.tutoring_start_hour:
            raise ValueError("tutoring_end_hour must be after tutoring_start_hour")
        return self

    def scheduling_overrides(self, **overrides: Any) -> dict[str, Any]:
        """Return the scheduling policy as keyword arguments for SchedulingRules."""
        values: dict[str, Any] = {
            "buffer_minutes": self.scheduling_buffer_minutes,
            "allowed_start_hour": self.tutoring_start_hour,
            "allowed_end_hour": self.tutoring_end_hour,
            "max_duration_minutes": self.max_session_minutes,
            "min_duration_minutes": 0,
            "timezone": self.scheduling_timezone,
        }
        values.update(overrides)
        return values


settings = Settings()
