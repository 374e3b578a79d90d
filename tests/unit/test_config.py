"""Unit tests for configuration management."""

import os
from collections.abc import Generator
from decimal import Decimal

import pytest
from pydantic import ValidationError

from services.shared.config import Settings, get_settings


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables before and after test."""
    original_env = dict(os.environ)
    env_vars = [k for k in os.environ if k.startswith("APP_")]
    for var in env_vars:
        del os.environ[var]
    yield
    os.environ.clear()
    os.environ.update(original_env)


def test_settings_defaults(clean_env: None) -> None:
    """Test that settings have correct default values."""
    settings = Settings(_env_file=None)

    assert settings.environment == "development"
    assert settings.log_level == "INFO"
    assert settings.service_name == "invoice-compliance-core"
    assert settings.service_version == "0.1.0"
    assert settings.default_vat_rate == Decimal("21")
    assert settings.default_currency == "EUR"
    assert settings.default_country == "NL"
    assert settings.batch_max_workers == 4
    assert settings.summary_top_n == 5


def test_settings_from_env_vars(clean_env: None) -> None:
    """Test that settings can be overridden via environment variables."""
    os.environ["APP_ENVIRONMENT"] = "production"
    os.environ["APP_LOG_LEVEL"] = "ERROR"
    os.environ["APP_DEFAULT_VAT_RATE"] = "9"
    os.environ["APP_DEFAULT_COUNTRY"] = "BE"
    os.environ["APP_BATCH_MAX_WORKERS"] = "8"

    settings = Settings(_env_file=None)

    assert settings.environment == "production"
    assert settings.log_level == "ERROR"
    assert settings.default_vat_rate == Decimal("9")
    assert settings.default_country == "BE"
    assert settings.batch_max_workers == 8


def test_settings_case_insensitive(clean_env: None) -> None:
    """Test that environment variables are case insensitive."""
    os.environ["app_log_level"] = "DEBUG"

    settings = Settings(_env_file=None)

    assert settings.log_level == "DEBUG"


def test_settings_reject_invalid_worker_count(clean_env: None) -> None:
    """Test that a batch needs at least one worker."""
    with pytest.raises(ValidationError):
        Settings(_env_file=None, batch_max_workers=0)


def test_settings_reject_negative_vat_rate(clean_env: None) -> None:
    """Test that the default VAT rate cannot be negative."""
    with pytest.raises(ValidationError):
        Settings(_env_file=None, default_vat_rate=-1)


def test_settings_reject_malformed_country(clean_env: None) -> None:
    """Test that the default country must be a two-letter code."""
    with pytest.raises(ValidationError):
        Settings(_env_file=None, default_country="NLD")


def test_get_settings_factory() -> None:
    """Test that factory function returns Settings instance."""
    settings = get_settings()

    assert isinstance(settings, Settings)
    assert settings.service_name
