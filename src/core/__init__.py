"""
Core Module

Foundational components: configuration, logging, exceptions, interfaces and
resilience primitives.
"""

from .exceptions import (
    CacheConnectionError,
    CacheError,
    CircuitBreakerOpenError,
    ConfigurationError,
    IntegrationError,
    LockUnavailableError,
    QueueError,
    StockSyncError,
    SyncError,
)
from .logging import (
    clear_job_id,
    get_job_id,
    get_logger,
    log_stage,
    set_job_id,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "set_job_id",
    "get_job_id",
    "clear_job_id",
    "log_stage",
    "StockSyncError",
    "ConfigurationError",
    "CacheError",
    "CacheConnectionError",
    "CircuitBreakerOpenError",
    "IntegrationError",
    "LockUnavailableError",
    "QueueError",
    "SyncError",
]
