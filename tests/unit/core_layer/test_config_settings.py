"""
Unit Tests for Configuration Settings

Tests the settings loading, validation, and default values.
"""

import pytest
from pydantic import ValidationError

from src.core.config.settings import Settings, get_settings, reload_settings


@pytest.mark.unit
class TestSettingsDefaults:
    """Defaults match the documented operating values."""

    def test_cache_ttls(self):
        settings = Settings()

        assert settings.cache.CACHE_TTL_STOCK == 30
        assert settings.cache.CACHE_TTL_STOCK_CRITICAL == 15
        assert settings.cache.CACHE_TTL_PRODUCTS == 300
        assert settings.cache.CACHE_TTL_SYNC_STATUS == 1800

    def test_circuit_breaker_thresholds(self):
        settings = Settings()

        assert settings.circuit_breaker.CB_FAILURE_THRESHOLD == 5
        assert settings.circuit_breaker.CB_RECOVERY_TIMEOUT == 60
        assert settings.circuit_breaker.CB_STOCK_FAILURE_THRESHOLD == 3

    def test_rate_limits(self):
        settings = Settings()

        assert settings.erp.ERP_RATE_LIMIT == 100
        assert settings.erp.ERP_STOCK_RATE_LIMIT == 200
        assert settings.pos.POS_RATE_LIMIT == 120

    def test_lock_ttl(self):
        assert Settings().lock.LOCK_POS_SYNC_TTL == 600


@pytest.mark.unit
class TestSettingsSections:
    def test_section_reflects_flat_value(self):
        settings = Settings(CACHE_TTL_STOCK=45)

        assert settings.CACHE_TTL_STOCK == 45
        assert settings.cache.CACHE_TTL_STOCK == 45

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ERP_API_URL", "https://erp.test")

        assert Settings().erp.ERP_API_URL == "https://erp.test"


@pytest.mark.unit
class TestSettingsValidation:
    @pytest.mark.parametrize("batch_size", [0, 501])
    def test_pos_batch_size_bounds(self, batch_size):
        with pytest.raises(ValidationError):
            Settings(POS_BATCH_SIZE=batch_size)

    def test_log_level_uppercased(self):
        assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_log_level_rejects_unknown(self):
        with pytest.raises(ValidationError):
            Settings(LOG_LEVEL="verbose")

    @pytest.mark.parametrize("secret", ["", "change-me", "  "])
    def test_enabled_webhooks_need_a_secret(self, secret):
        with pytest.raises(ValidationError):
            Settings(WEBHOOK_ENABLED=True, WEBHOOK_SECRET=secret)

    def test_disabled_webhooks_need_no_secret(self):
        assert Settings(WEBHOOK_ENABLED=False).WEBHOOK_SECRET == ""

    def test_webhook_secret_accepted(self):
        assert Settings(WEBHOOK_ENABLED=True, WEBHOOK_SECRET="s3cr3t-value").webhook.WEBHOOK_ENABLED is True


@pytest.mark.unit
class TestSettingsSingleton:
    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reload_replaces_instance(self):
        first = get_settings()
        second = reload_settings()

        assert second is not first
        assert get_settings() is second
