"""
Tests for settings parsing and validation
"""

import pytest
from pydantic import ValidationError

from credit_ledger.core.config.settings import (
    BillingSettings,
    DatabaseSettings,
    EmailSettings,
    LoggingSettings,
    Settings,
)
from credit_ledger.core.exceptions import ConfigurationError
from credit_ledger.core.logging import logging_config_from_settings


class TestDatabaseSettings:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("postgresql://u:p@db/ledger", "postgresql+asyncpg://u:p@db/ledger"),
            ("postgres://u:p@db/ledger", "postgresql+asyncpg://u:p@db/ledger"),
            ("sqlite:///ledger.db", "sqlite+aiosqlite:///ledger.db"),
            ("postgresql+asyncpg://u:p@db/ledger", "postgresql+asyncpg://u:p@db/ledger"),
        ],
    )
    def test_urls_are_moved_to_async_drivers(self, url, expected):
        assert DatabaseSettings(DATABASE_URL=url).DATABASE_URL == expected


class TestBillingSettings:
    def test_defaults(self):
        billing = BillingSettings()

        assert billing.TRANSACTION_TIMEOUT_SECONDS == 50.0
        assert billing.TRANSACTION_MAX_WAIT_SECONDS == 5.0
        assert billing.UNREGISTERED_EMAIL_POLICY == "reject"
        assert billing.DEFAULT_CURRENCY == "USD"

    def test_policy_is_normalized(self):
        assert BillingSettings(UNREGISTERED_EMAIL_POLICY="SKIP").UNREGISTERED_EMAIL_POLICY == "skip"

    def test_unknown_policy(self):
        with pytest.raises(ValidationError):
            BillingSettings(UNREGISTERED_EMAIL_POLICY="ignore")

    def test_attempts_must_be_positive(self):
        with pytest.raises(ValidationError):
            BillingSettings(SERIALIZATION_MAX_ATTEMPTS=0)

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_CURRENCY", "EUR")
        monkeypatch.setenv("SERIALIZATION_MAX_ATTEMPTS", "7")

        billing = BillingSettings()

        assert billing.DEFAULT_CURRENCY == "EUR"
        assert billing.SERIALIZATION_MAX_ATTEMPTS == 7


class TestSettings:
    def test_wait_cannot_exceed_timeout(self):
        settings = Settings(
            billing=BillingSettings(
                TRANSACTION_TIMEOUT_SECONDS=5.0, TRANSACTION_MAX_WAIT_SECONDS=10.0
            )
        )

        with pytest.raises(ConfigurationError) as exc_info:
            settings.validate_configuration()

        assert exc_info.value.details["config_key"] == "TRANSACTION_MAX_WAIT_SECONDS"

    def test_email_attempts_must_be_positive(self):
        settings = Settings(email=EmailSettings(EMAIL_MAX_ATTEMPTS=0))

        with pytest.raises(ConfigurationError):
            settings.validate_configuration()

    def test_valid_configuration(self, app_settings):
        app_settings.validate_configuration()


class TestLoggingSettings:
    def test_level_is_folded_into_nested_config(self):
        logging_settings = LoggingSettings(LOG_LEVEL="DEBUG", LOG_FORMAT="json")

        config = logging_config_from_settings(logging_settings)

        assert config.level == "DEBUG"
        assert config.format == "json"
        assert config.console.level == "DEBUG"
        assert config.file.enabled is False
