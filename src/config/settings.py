"""
Environment-driven configuration.

Every field maps to an upper-case environment variable (or a line in
`.env`). Billing policy values are validated here so a bad deployment
fails at startup rather than on the first booking.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.billing.booking import BookingLimits


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API
    api_title: str = "CoachLedger API"
    api_version: str = "v1"
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated keys accepted in X-API-Key.",
    )
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated origins for the web frontend, or *.",
    )
    log_level: str = "INFO"

    # Snowflake; ignored when snowflake_mock_mode is on
    snowflake_mock_mode: bool = Field(
        default=False,
        description="Keep lessons in process memory instead of Snowflake.",
    )
    snowflake_account: str = ""
    snowflake_user: str = ""
    snowflake_password: str = ""
    snowflake_private_key_path: Optional[str] = None
    snowflake_private_key_base64: Optional[str] = None
    snowflake_database: str = "COACHLEDGER"
    snowflake_schema: str = "BILLING"
    snowflake_warehouse: str = "COMPUTE_WH"
    snowflake_role: Optional[str] = None

    # Billing policy
    min_lesson_minutes: int = Field(default=5, gt=0)
    legacy_min_lesson_minutes: int = Field(
        default=15,
        gt=0,
        description="Shortest single-client lesson that can be booked.",
    )
    max_lesson_hours: int = Field(default=24, gt=0)
    max_custom_rate: Decimal = Field(default=Decimal("999"), gt=0)
    invoice_due_days: int = Field(
        default=14,
        ge=0,
        description="Days after the lesson date that a single-client invoice falls due.",
    )

    @model_validator(mode="after")
    def _check_duration_bounds(self) -> "Settings":
        longest = self.max_lesson_hours * 60
        if max(self.min_lesson_minutes, self.legacy_min_lesson_minutes) > longest:
            raise ValueError("minimum lesson length exceeds MAX_LESSON_HOURS")
        return self

    @property
    def api_keys_list(self) -> list[str]:
        return _split_csv(self.api_keys)

    @property
    def cors_origins_list(self) -> list[str]:
        return ["*"] if self.cors_origins.strip() == "*" else _split_csv(self.cors_origins)

    @property
    def booking_limits(self) -> BookingLimits:
        return BookingLimits(
            min_lesson_minutes=self.min_lesson_minutes,
            legacy_min_lesson_minutes=self.legacy_min_lesson_minutes,
            max_lesson_hours=self.max_lesson_hours,
            max_custom_rate=self.max_custom_rate,
            invoice_due_days=self.invoice_due_days,
        )

    def validate_required_fields(self) -> list[str]:
        """
        Names of environment variables that must be set but are not.

        Snowflake credentials only matter outside mock mode, which plain
        field validation cannot express.
        """
        missing = []
        if not self.api_keys_list:
            missing.append("API_KEYS")

        if self.snowflake_mock_mode:
            return missing

        if not self.snowflake_account:
            missing.append("SNOWFLAKE_ACCOUNT")
        if not self.snowflake_user:
            missing.append("SNOWFLAKE_USER")
        has_key = self.snowflake_private_key_path or self.snowflake_private_key_base64
        if not (self.snowflake_password or has_key):
            missing.append("SNOWFLAKE_PASSWORD or SNOWFLAKE_PRIVATE_KEY_PATH")
        return missing


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings; tests override the dependency or call cache_clear()."""
    return Settings()
