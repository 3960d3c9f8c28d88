# backend/studio_ledger/core/config.py
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


_DEFAULT_SQLITE_URL = "sqlite:///./studio_ledger.db"


class Settings(BaseSettings):
    secret_key: SecretStr = Field(
        default=SecretStr("local-dev-secret-key-not-for-production"),
        description="Secret key for JWT tokens",
    )
    algorithm: str = "HS256"

    environment: str = Field(default="development", description="development|test|production")
    is_testing: bool = False  # Set to True when running tests

    database_url: str = Field(
        default=_DEFAULT_SQLITE_URL,
        description="SQLAlchemy URL; PostgreSQL in production, SQLite locally and in tests",
    )
    db_echo: bool = False
    db_busy_timeout_seconds: float = Field(
        default=30.0, description="SQLite lock wait before a writer gives up"
    )

    # Stripe
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret key for backend API calls",
    )
    stripe_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Signing secret for the checkout/subscription webhook endpoint",
    )

    # Booking policy
    cancellation_cutoff_hours: float = Field(
        default=2.0, description="Bookings cannot be cancelled closer than this to class start"
    )
    refund_credit_on_cancel: bool = Field(
        default=False,
        description="Restore the debited credit when a credit-paid booking is cancelled",
    )
    check_in_opens_minutes: int = Field(
        default=60, description="How long before class start check-in opens"
    )
    check_in_scheme: str = Field(default="hottemple", description="URI scheme of check-in QR codes")

    # Pass grants
    default_unlimited_days: int = Field(
        default=30, description="Window length for unlimited plans without an explicit duration"
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("cancellation_cutoff_hours")
    @classmethod
    def _non_negative_cutoff(cls, value: float) -> float:
        if value < 0:
            raise ValueError("cancellation_cutoff_hours must be >= 0")
        return value

    @field_validator("check_in_opens_minutes", "default_unlimited_days")
    @classmethod
    def _positive_window(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("window lengths must be positive")
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def stripe_api_key(self) -> Optional[str]:
        """Return the raw Stripe secret key, or None when Stripe is not configured."""
        value = self.stripe_secret_key.get_secret_value()
        return value or None


settings = Settings()

if is_running_tests():
    settings.is_testing = True
