"""
Configuration Management for the Financial Document Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Business constants (the 30-day due date, the 30-day conversion window,
4-digit numbers) live here with those values as defaults, so they are
visible and validated at startup.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Document lifecycle and numbering configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DOCENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    invoice_due_days: int = Field(
        default=30,
        ge=0,
        le=365,
        description="Days between invoice creation and its default due date"
    )
    quote_conversion_window_days: int = Field(
        default=30,
        ge=0,
        description="Maximum age of an accepted quote that can still become an invoice"
    )
    number_padding: int = Field(
        default=4,
        ge=1,
        le=12,
        description="Minimum digits in a document number (Q-0001)"
    )
    transaction_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How long a transaction may wait to start before failing"
    )
    default_country: str = Field(
        default="FRANCE",
        description="Country used when a document is created without one"
    )

    @field_validator("default_country")
    @classmethod
    def validate_default_country(cls, v: str) -> str:
        """The default country must have a registered tax regime."""
        from docengine.tax.regimes import TAX_REGIMES

        if v not in TAX_REGIMES:
            raise ValueError(
                f"Unsupported default country {v}. "
                f"Choose one of: {', '.join(TAX_REGIMES)}"
            )
        return v


class LoggingSettings(BaseSettings):
    """Structured logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DOCENGINE_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    level: str = Field(
        default="INFO",
        description="Minimum log level"
    )
    json_output: bool = Field(
        default=True,
        description="Render logs as JSON (False: human-readable console output)"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def logging(self) -> LoggingSettings:
        return LoggingSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.engine
        results["engine"] = True
    except Exception as e:
        results["engine"] = False
        results["engine_error"] = str(e)

    try:
        _ = settings.logging
        results["logging"] = True
    except Exception as e:
        results["logging"] = False
        results["logging_error"] = str(e)

    return results
