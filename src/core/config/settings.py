#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the entire
stock-sync worker engine. All configuration is centralized here to ensure
consistency across modules.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- IDE autocomplete for all settings
- Easy testing with override mechanisms

Author: System Architect
Date: 2025-12-05
"""

from typing import Literal, TypeVar

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_SECTION_CONFIG = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RedisSettings(BaseSettings):
    """
    Redis configuration for the shared cache, lock and queue store.

    Architectural Decision: one connection pool shared by every consumer
    - Per-key atomicity is the only guarantee relied upon
    - Health checks: Every 30s
    """

    REDIS_URL: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    model_config = _SECTION_CONFIG


class DatastoreSettings(BaseSettings):
    """Central datastore (PostgREST-compatible HTTP API) configuration."""

    DATASTORE_URL: str = Field(default="http://localhost:54321", description="Datastore base URL")
    DATASTORE_SERVICE_KEY: str = Field(default="", description="Service role key")
    DATASTORE_TIMEOUT: int = Field(default=30, description="Request timeout in seconds")
    DATASTORE_TABLE_PREFIX: str = Field(default="", description="Prefix applied to every table name")

    model_config = _SECTION_CONFIG


class ErpSettings(BaseSettings):
    """
    ERP upstream configuration.

    The general client and the stock client share the base URL and credentials
    but carry independent rate limits and circuit breakers.
    """

    ERP_API_URL: str = Field(default="https://erp-api.example.com", description="ERP API base URL")
    ERP_API_KEY: str = Field(default="", description="ERP API key")
    ERP_CLIENT: str = Field(default="800", description="ERP client id header")
    ERP_TIMEOUT: int = Field(default=30, description="General request timeout in seconds")
    ERP_STOCK_TIMEOUT: int = Field(default=15, description="Stock request timeout in seconds")
    ERP_RATE_LIMIT: int = Field(default=100, description="General client requests per minute")
    ERP_STOCK_RATE_LIMIT: int = Field(default=200, description="Stock client requests per minute")

    model_config = _SECTION_CONFIG


class RetailPosSettings(BaseSettings):
    """Retail POS upstream configuration."""

    POS_BASE_URL: str = Field(default="http://pos-server.local", description="POS API base URL")
    POS_TIMEOUT: int = Field(default=30, description="Request timeout in seconds")
    POS_RATE_LIMIT: int = Field(default=120, description="Requests per minute")
    POS_BATCH_SIZE: int = Field(default=100, description="Default stock batch size")
    POS_STORE_SIDS: list[str] = Field(
        default=["621769196001438846"], description="Store system ids to synchronize"
    )

    @field_validator("POS_BATCH_SIZE")
    @classmethod
    def validate_batch_size(cls, v):
        """Batch size must be within (0, 500]."""
        if not 0 < v <= 500:
            raise ValueError("POS_BATCH_SIZE must be between 1 and 500")
        return v

    model_config = _SECTION_CONFIG


class CircuitBreakerSettings(BaseSettings):
    """
    Circuit breaker configuration for fault tolerance.

    STAGE-CB: Circuit breaker thresholds, one pair per upstream integration
    """

    CB_FAILURE_THRESHOLD: int = Field(default=5, description="Failures before opening circuit")
    CB_RECOVERY_TIMEOUT: int = Field(default=60, description="Seconds before attempting recovery")
    CB_STOCK_FAILURE_THRESHOLD: int = Field(default=3, description="Stock client failure threshold")
    CB_STOCK_RECOVERY_TIMEOUT: int = Field(default=30, description="Stock client open duration")

    model_config = _SECTION_CONFIG


class CacheSettings(BaseSettings):
    """
    Cache TTL configuration.

    STAGE-C: TTLs in seconds per domain namespace
    """

    CACHE_TTL_STOCK: int = Field(default=30, description="Stock entry TTL")
    CACHE_TTL_STOCK_CRITICAL: int = Field(default=15, description="Critical shadow entry TTL")
    CACHE_TTL_PRODUCTS: int = Field(default=300, description="ERP product TTL")
    CACHE_TTL_CUSTOMERS: int = Field(default=600, description="ERP customer TTL")
    CACHE_TTL_POS_PRODUCTS: int = Field(default=4 * 60 * 60, description="POS product page TTL")
    CACHE_TTL_POS_STOCK: int = Field(default=5 * 60, description="POS stock TTL")
    CACHE_TTL_SYNC_STATUS: int = Field(default=30 * 60, description="Sync status TTL")
    CACHE_CRITICAL_THRESHOLD: int = Field(default=10, description="Quantity at or below which stock is critical")

    @field_validator(
        "CACHE_TTL_STOCK",
        "CACHE_TTL_STOCK_CRITICAL",
        "CACHE_TTL_PRODUCTS",
        "CACHE_TTL_CUSTOMERS",
        "CACHE_TTL_POS_PRODUCTS",
        "CACHE_TTL_POS_STOCK",
        "CACHE_TTL_SYNC_STATUS",
    )
    @classmethod
    def validate_ttl(cls, v):
        """Every cache entry must carry a bounded, positive TTL."""
        if v <= 0:
            raise ValueError("Cache TTLs must be positive")
        return v

    model_config = _SECTION_CONFIG


class LockSettings(BaseSettings):
    """Distributed lock configuration."""

    LOCK_POS_SYNC_TTL: int = Field(default=600, description="POS store sync lock TTL in seconds")
    LOCK_ERP_SYNC_TTL: int = Field(default=300, description="ERP delta sync lock TTL in seconds")

    model_config = _SECTION_CONFIG


class QueueSettings(BaseSettings):
    """Job queue configuration."""

    POS_SYNC_CONCURRENCY: int = Field(default=2, description="Concurrent POS sync jobs")
    QUEUE_POLL_INTERVAL: float = Field(default=0.5, description="Idle poll interval in seconds")
    QUEUE_COMPLETED_MAX_AGE_HOURS: int = Field(default=24, description="Completed job retention")
    QUEUE_FAILED_MAX_AGE_HOURS: int = Field(default=24 * 7, description="Failed job retention")
    QUEUE_BACKLOG_ALERT_THRESHOLD: int = Field(default=1000, description="Backlog alert threshold")
    QUEUE_POS_BACKLOG_ALERT_THRESHOLD: int = Field(default=500, description="POS queue backlog alert threshold")
    QUEUE_FAILED_ALERT_THRESHOLD: int = Field(default=50, description="Failed jobs alert threshold")

    model_config = _SECTION_CONFIG


class SchedulerSettings(BaseSettings):
    """Scheduler configuration."""

    SCHEDULER_ENABLED: bool = Field(default=True, description="Start cron timers with the worker")
    SCHEDULER_TIMEZONE: str = Field(default="UTC", description="Timezone for cron expressions")

    model_config = _SECTION_CONFIG


class AlertSettings(BaseSettings):
    """Alert channel configuration."""

    ALERT_CHAT_WEBHOOK_URL: str = Field(default="", description="Chat webhook URL")
    ALERT_EMAIL_TO: list[str] = Field(default=["alerts@example.com"], description="Alert recipients")
    ALERT_SUPPRESSION_WINDOW_SECONDS: int = Field(
        default=3600, description="Suppress repeats of the same resource alert within this window"
    )
    SMTP_HOST: str = Field(default="", description="SMTP host")
    SMTP_PORT: int = Field(default=587, description="SMTP port")
    SMTP_USERNAME: str = Field(default="", description="SMTP username")
    SMTP_PASSWORD: str = Field(default="", description="SMTP password")
    SMTP_FROM_EMAIL: str = Field(default="alerts@example.com", description="Sender address")
    SMTP_USE_TLS: bool = Field(default=True, description="Issue STARTTLS")
    SMTP_TIMEOUT: int = Field(default=10, description="SMTP timeout in seconds")

    model_config = _SECTION_CONFIG


INSECURE_WEBHOOK_SECRETS = frozenset({"", "change-me", "changeme", "secret"})


class WebhookSettings(BaseSettings):
    """Inbound webhook configuration."""

    WEBHOOK_ENABLED: bool = Field(default=False, description="Mount webhook routes")
    WEBHOOK_SECRET: str = Field(default="", description="Shared HMAC-SHA256 secret")
    WEBHOOK_MAX_BODY_BYTES: int = Field(default=10 * 1024 * 1024, description="Maximum body size")

    @model_validator(mode="after")
    def require_secret_when_enabled(self):
        """Enabled webhooks must not verify against an empty or placeholder secret."""
        if self.WEBHOOK_ENABLED and self.WEBHOOK_SECRET.strip() in INSECURE_WEBHOOK_SECRETS:
            raise ValueError("WEBHOOK_SECRET must be set when WEBHOOK_ENABLED is true")
        return self

    model_config = _SECTION_CONFIG


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration

    Architectural Decision: structlog for production-grade logging
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = _SECTION_CONFIG


class ApplicationSettings(BaseSettings):
    """General application settings."""

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Stock Sync Workers", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=4000, description="Health/admin/webhook API port")

    model_config = _SECTION_CONFIG


_SECTIONS = (
    RedisSettings,
    DatastoreSettings,
    ErpSettings,
    RetailPosSettings,
    CircuitBreakerSettings,
    CacheSettings,
    LockSettings,
    QueueSettings,
    SchedulerSettings,
    AlertSettings,
    WebhookSettings,
    LoggingSettings,
    ApplicationSettings,
)

SectionT = TypeVar("SectionT", bound=BaseSettings)


class Settings(
    ApplicationSettings,
    LoggingSettings,
    WebhookSettings,
    AlertSettings,
    SchedulerSettings,
    QueueSettings,
    LockSettings,
    CacheSettings,
    CircuitBreakerSettings,
    RetailPosSettings,
    ErpSettings,
    DatastoreSettings,
    RedisSettings,
):
    """
    Main settings class that aggregates all configuration sections.

    Every section field is available flat (``settings.CACHE_TTL_STOCK``) and
    through its section accessor (``settings.cache.CACHE_TTL_STOCK``).

    Usage:
        from src.core.config.settings import get_settings

        settings = get_settings()
        redis_url = settings.redis.REDIS_URL
        stock_ttl = settings.cache.CACHE_TTL_STOCK
    """

    def _section(self, section_cls: type[SectionT]) -> SectionT:
        return section_cls(**{name: getattr(self, name) for name in section_cls.model_fields})

    @property
    def redis(self) -> RedisSettings:
        """Get Redis settings."""
        return self._section(RedisSettings)

    @property
    def datastore(self) -> DatastoreSettings:
        """Get datastore settings."""
        return self._section(DatastoreSettings)

    @property
    def erp(self) -> ErpSettings:
        """Get ERP settings."""
        return self._section(ErpSettings)

    @property
    def pos(self) -> RetailPosSettings:
        """Get retail POS settings."""
        return self._section(RetailPosSettings)

    @property
    def circuit_breaker(self) -> CircuitBreakerSettings:
        """Get circuit breaker settings."""
        return self._section(CircuitBreakerSettings)

    @property
    def cache(self) -> CacheSettings:
        """Get cache settings."""
        return self._section(CacheSettings)

    @property
    def lock(self) -> LockSettings:
        """Get lock settings."""
        return self._section(LockSettings)

    @property
    def queue(self) -> QueueSettings:
        """Get queue settings."""
        return self._section(QueueSettings)

    @property
    def scheduler(self) -> SchedulerSettings:
        """Get scheduler settings."""
        return self._section(SchedulerSettings)

    @property
    def alerts(self) -> AlertSettings:
        """Get alert settings."""
        return self._section(AlertSettings)

    @property
    def webhook(self) -> WebhookSettings:
        """Get webhook settings."""
        return self._section(WebhookSettings)

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return self._section(LoggingSettings)

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return self._section(ApplicationSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
