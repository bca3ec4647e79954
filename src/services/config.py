"""Application configuration from environment variables."""

from decimal import Decimal
from typing import Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings for the billing engine loaded from environment variables.

    Pydantic automatically loads values from:
    1. OS environment variables (at instantiation time)
    2. .env file in the working directory
    """

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./water_billing.db",
        description="SQLAlchemy connection string",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/billing.log", description="Log file path")

    # Billing
    default_basic_rate: Decimal = Field(
        default=Decimal("1.5"),
        description="Cost per m³ when water_basic_rate is not configured",
    )
    reconciliation_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        description="Allowed difference between billed total and receipt amount",
    )

    @field_validator("default_basic_rate")
    @classmethod
    def _basic_rate_positive(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("default_basic_rate must be positive")
        return value

    @field_validator("reconciliation_tolerance")
    @classmethod
    def _tolerance_non_negative(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("reconciliation_tolerance must not be negative")
        return value


# Lazy loader so environment overrides made before first use are honoured
_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings (next get_settings() re-reads the environment)."""
    global _settings_instance
    _settings_instance = None


__all__ = ["Settings", "get_settings", "reset_settings"]
