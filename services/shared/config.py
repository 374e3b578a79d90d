"""Shared configuration management for the compliance core.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from decimal import Decimal
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_LOG_LEVEL=debug

    Fallback placeholder values, scheme codes and scoring tables are fixed
    module constants and deliberately not configurable here.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="invoice-compliance-core",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Normalization
    default_vat_rate: Decimal = Field(
        default=Decimal("21"),
        ge=0,
        description="VAT rate (percent) applied to lines that carry no rate",
    )
    default_currency: str = Field(
        default="EUR", min_length=3, max_length=3, description="Currency for records without one"
    )
    default_country: str = Field(
        default="NL", min_length=2, max_length=2, description="Country for parties without one"
    )

    # Batch processing
    batch_max_workers: int = Field(
        default=4,
        ge=1,
        description="Worker threads used to normalize and score a batch",
    )
    summary_top_n: int = Field(
        default=5,
        ge=1,
        description="Number of most frequent missing fields shown in batch summaries",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
