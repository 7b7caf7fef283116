"""
Configuration Module

This module provides centralized, type-safe configuration management
for the stock-sync worker engine.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: System-wide constants, enums, key prefixes and thresholds

Architecture:
------------
1. **Constants Layer** (`constants.py`):
   - Immutable system constants
   - Type-safe enums (Stage, CircuitState, SyncJobType, AlertSeverity, etc.)
   - Job priorities and stock thresholds
   - Key-value store prefixes
   - HTTP headers

2. **Settings Layer** (`settings.py`):
   - Environment-based configuration
   - Pydantic validation
   - Section accessors (redis, erp, pos, cache, queue, alerts, etc.)
   - Singleton pattern for global access

Usage:
------
```python
from src.core.config import get_settings
from src.core.config.constants import CircuitState, QueueName

settings = get_settings()
stock_ttl = settings.cache.CACHE_TTL_STOCK
erp_quota = settings.erp.ERP_RATE_LIMIT
```

Environment Variables:
---------------------
```bash
REDIS_URL=redis://localhost:6379/0
ERP_API_URL=https://erp-api.example.com
ERP_API_KEY=...
POS_BASE_URL=http://pos-server.local
CACHE_TTL_STOCK=30
ALERT_CHAT_WEBHOOK_URL=https://hooks.example.com/...
WEBHOOK_SECRET=...
LOG_LEVEL=INFO
```

Testing:
-------
```python
import os
from src.core.config import reload_settings

os.environ["LOG_LEVEL"] = "DEBUG"
settings = reload_settings()
assert settings.logging.LOG_LEVEL == "DEBUG"
```

Author: System Architect
Date: 2025-12-05
"""

from src.core.config.constants import (
    CRITICAL_STOCK_THRESHOLD,
    HALF_OPEN_SUCCESS_THRESHOLD,
    MAX_RETRIES,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
    AlertSeverity,
    AlertType,
    BackoffType,
    CircuitState,
    JobState,
    QueueName,
    Stage,
    StockStatus,
    SyncJobType,
    SyncStatusState,
)
from src.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "reload_settings",
    # Enums
    "Stage",
    "CircuitState",
    "SyncJobType",
    "SyncStatusState",
    "StockStatus",
    "QueueName",
    "JobState",
    "BackoffType",
    "AlertSeverity",
    "AlertType",
    # Thresholds
    "CRITICAL_STOCK_THRESHOLD",
    "HALF_OPEN_SUCCESS_THRESHOLD",
    # Retry
    "MAX_RETRIES",
    "RETRY_BASE_DELAY",
    "RETRY_MAX_DELAY",
]
