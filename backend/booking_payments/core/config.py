# backend/booking_payments/core/config.py
import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

from .constants import (
    BRAND_NAME,
    DEFAULT_BOOKING_TIMEZONE,
    DEFAULT_BUSINESS_PHONE,
    DEFAULT_CANCELLATION_HOURS_PRIOR,
)

logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.info(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment name")
    log_level: str = Field(default="INFO", description="Root logging level")

    # Database (Supabase Postgres in production, SQLite locally)
    database_url: str = Field(
        default="sqlite:///./booking_payments.db",
        description="SQLAlchemy database URL",
    )

    # Stripe Configuration
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret key for backend API calls",
    )
    stripe_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Signing secret for the payment events webhook endpoint",
    )
    stripe_currency: str = Field(default="aud", description="Default currency for payments")
    stripe_timeout_seconds: int = Field(
        default=8, description="Network timeout applied to Stripe API calls"
    )

    # Customer cancellation policy
    cancellation_hours_prior: int = Field(
        default=DEFAULT_CANCELLATION_HOURS_PRIOR,
        description="Customers cannot self-cancel within this many hours of the booking",
    )
    business_phone: str = Field(
        default=DEFAULT_BUSINESS_PHONE,
        description="Phone number shown when self-cancellation is refused",
    )
    booking_timezone: str = Field(
        default=DEFAULT_BOOKING_TIMEZONE,
        description="Timezone booking times are shown in on customer pages",
    )

    brand_name: str = Field(default=BRAND_NAME)
    site_url: str = Field(default="https://rejuvenators.com", description="Public website URL")

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("stripe_currency", mode="before")
    @classmethod
    def _normalize_currency(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("cancellation_hours_prior")
    @classmethod
    def _validate_cancellation_hours(cls, value: int) -> int:
        if value < 0:
            raise ValueError("cancellation_hours_prior must not be negative")
        return value

    @field_validator("booking_timezone")
    @classmethod
    def _validate_booking_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones:
            raise ValueError(f"Invalid timezone: {value}")
        return value


settings = Settings()
