"""
Exception Module

Structured exception hierarchy for the stock-sync worker engine.
All exceptions are organized by theme for better maintainability and debuggability.

Module Structure:
-----------------
- **base.py**: StockSyncError base class + ConfigurationError
- **cache.py**: Key-value store exceptions
- **circuit_breaker.py**: Circuit breaker exceptions
- **rate_limit.py**: Rate limiter exceptions
- **lock.py**: Distributed lock exceptions
- **queue.py**: Job queue exceptions
- **integration.py**: Upstream HTTP exceptions
- **sync.py**: Sync worker exceptions
- **datastore.py**: Central datastore exceptions
- **alert.py**: Alert dispatch exceptions
- **webhook.py**: Inbound webhook exceptions
- **scheduler.py**: Timer registry exceptions

Usage:
------
```python
from src.core.exceptions import LockUnavailableError, UpstreamTimeoutError
from src.core.exceptions.integration import IntegrationError
```

Author: System Architect
Date: 2025-12-08
"""

from src.core.exceptions.alert import AlertDispatchError
from src.core.exceptions.base import ConfigurationError, StockSyncError
from src.core.exceptions.cache import CacheConnectionError, CacheError, CacheKeyError
from src.core.exceptions.circuit_breaker import CircuitBreakerError, CircuitBreakerOpenError
from src.core.exceptions.datastore import DatastoreError
from src.core.exceptions.integration import (
    IntegrationError,
    UpstreamConnectionError,
    UpstreamHostNotFoundError,
    UpstreamNotFoundError,
    UpstreamRateLimitError,
    UpstreamServerError,
    UpstreamTimeoutError,
    UpstreamUnauthorizedError,
)
from src.core.exceptions.lock import LockError, LockUnavailableError
from src.core.exceptions.queue import (
    JobProcessorNotFoundError,
    JobStalledError,
    QueueError,
    UnknownQueueError,
)
from src.core.exceptions.rate_limit import RateLimitError
from src.core.exceptions.scheduler import SchedulerError, UnknownTimerError
from src.core.exceptions.sync import SyncError, UnknownJobTypeError
from src.core.exceptions.webhook import (
    MalformedWebhookEventError,
    UnknownWebhookEventError,
    WebhookError,
    WebhookSignatureError,
)

__all__ = [
    # Base
    "StockSyncError",
    "ConfigurationError",
    # Cache
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    # Circuit Breaker
    "CircuitBreakerError",
    "CircuitBreakerOpenError",
    # Rate Limit
    "RateLimitError",
    # Lock
    "LockError",
    "LockUnavailableError",
    # Queue
    "QueueError",
    "UnknownQueueError",
    "JobProcessorNotFoundError",
    "JobStalledError",
    # Integration
    "IntegrationError",
    "UpstreamTimeoutError",
    "UpstreamConnectionError",
    "UpstreamNotFoundError",
    "UpstreamUnauthorizedError",
    "UpstreamRateLimitError",
    "UpstreamServerError",
    "UpstreamHostNotFoundError",
    # Sync
    "SyncError",
    "UnknownJobTypeError",
    # Scheduler
    "SchedulerError",
    "UnknownTimerError",
    # Datastore
    "DatastoreError",
    # Alert
    "AlertDispatchError",
    # Webhook
    "WebhookError",
    "WebhookSignatureError",
    "MalformedWebhookEventError",
    "UnknownWebhookEventError",
]
