"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from btc_ledger.config import LedgerSettings, get_settings, validate_all_settings


@pytest.fixture(autouse=True)
def clean_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestLedgerSettings:
    """Tests for LedgerSettings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LEDGER_ENABLE_REMOTE", raising=False)
        settings = LedgerSettings()
        assert settings.storage_keys == (
            "btc-tracker:transactions",
            "btc-tracker:storage-version",
            "btc-tracker:backup-v1",
        )
        assert settings.auth_settle_seconds == 0.5
        assert not settings.enable_remote

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LEDGER_AUTH_SETTLE_SECONDS", "2")
        monkeypatch.setenv("LEDGER_TRANSACTIONS_KEY", "  custom:tx  ")
        settings = LedgerSettings()
        assert settings.auth_settle_seconds == 2.0
        assert settings.transactions_key == "custom:tx"

    def test_blank_key_rejected(self, monkeypatch):
        monkeypatch.setenv("LEDGER_BACKUP_KEY", "   ")
        with pytest.raises(ValidationError):
            LedgerSettings()

    def test_effective_log_level(self, monkeypatch):
        monkeypatch.delenv("LEDGER_LOG_LEVEL", raising=False)
        monkeypatch.setenv("LEDGER_DEBUG_MODE", "true")
        assert LedgerSettings().effective_log_level == "DEBUG"

        monkeypatch.setenv("LEDGER_LOG_LEVEL", "warning")
        assert LedgerSettings().effective_log_level == "WARNING"


class TestValidateAllSettings:
    """Tests for the startup check."""

    def test_local_only_needs_no_google_settings(self, monkeypatch):
        monkeypatch.setenv("LEDGER_ENABLE_REMOTE", "false")
        assert validate_all_settings() == {"ledger": True, "google_sheets": True}

    def test_remote_without_google_settings(self, monkeypatch):
        monkeypatch.setenv("LEDGER_ENABLE_REMOTE", "true")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        results = validate_all_settings()

        assert results["ledger"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results
