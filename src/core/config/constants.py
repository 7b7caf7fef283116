"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the stock-sync worker engine.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers (TTLs, thresholds, priorities)
- Type-safe enums for job, status and alert state
- Easy to update and track changes

Author: System Architect
Date: 2025-12-05
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Processing stages used as the ``stage=`` field of log events.

    Format: {PREFIX}_{DESCRIPTIVE_NAME}
    - PREFIX: Short alphabetic prefix per subsystem (CB, R, RL, C, LK, Q, SYNC, A, S, W)
    - DESCRIPTIVE_NAME: Clear, uppercase description with underscores

    Examples:
        logger.warning("Circuit opened", stage=Stage.CIRCUIT_BREAKER.value)
    """

    CIRCUIT_BREAKER = "CB_CIRCUIT_BREAKER"
    RETRY = "R_RETRY_LOGIC"
    RATE_LIMIT = "RL_RATE_LIMITER"
    CACHE = "C_CACHE"
    LOCK = "LK_DISTRIBUTED_LOCK"
    QUEUE = "Q_JOB_QUEUE"
    INTEGRATION = "I_INTEGRATION_CLIENT"
    SYNC = "SYNC_WORKER"
    ALERT = "A_ALERT_MANAGER"
    SCHEDULER = "S_SCHEDULER"
    WEBHOOK = "W_WEBHOOK"
    DATASTORE = "D_DATASTORE"
    METRICS = "M_METRICS_COLLECTION"


# ============================================================================
# Circuit Breaker States
# ============================================================================


class CircuitState(str, Enum):
    """
    Circuit breaker states.

    CLOSED: Normal operation, requests allowed
    OPEN: Failing fast, requests blocked
    HALF_OPEN: Probing recovery
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


# ============================================================================
# Sync Jobs
# ============================================================================


class SyncJobType(str, Enum):
    """Resource sync job types (POS store synchronization)."""

    FULL_SYNC = "full_sync"
    INCREMENTAL_SYNC = "incremental_sync"
    STOCK_SYNC = "stock_sync"
    PRODUCT_SYNC = "product_sync"


class ErpStockJobType(str, Enum):
    """ERP stock job types."""

    SYNC_STOCK_DELTA = "sync-stock-delta"
    SYNC_CRITICAL_STOCK = "sync-critical-stock"
    ALERT_ZERO_STOCK = "alert-zero-stock"
    PRELOAD_POPULAR = "preload-popular"


class ErpCatalogJobType(str, Enum):
    """ERP catalog job types."""

    SYNC_PRODUCTS_DELTA = "sync-products-delta"
    SYNC_CUSTOMERS_DELTA = "sync-customers-delta"
    SYNC_SALES_DELTA = "sync-sales-delta"
    FULL_SYNC = "full-sync"


class SyncStatusState(str, Enum):
    """Per-resource sync status."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    COMPLETED = "completed"


class StockStatus(str, Enum):
    """Derived status of a processed stock record."""

    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    NO_DATA = "no_data"


class TriggerPriority(str, Enum):
    """Priority label for manually triggered syncs."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Numeric queue priority per manual trigger label
MANUAL_TRIGGER_PRIORITIES = {
    TriggerPriority.LOW: 10,
    TriggerPriority.MEDIUM: 15,
    TriggerPriority.HIGH: 20,
    TriggerPriority.CRITICAL: 25,
}


# ============================================================================
# Queues
# ============================================================================


class QueueName(str, Enum):
    """Named job queues, one per urgency class."""

    CRITICAL_STOCK = "critical-stock"
    STOCK_SYNC = "stock-sync"
    ERP_SYNC = "erp-sync"
    POS_SYNC = "pos-sync"
    NOTIFICATION = "notification"


class JobState(str, Enum):
    """Lifecycle state of a queued job."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class BackoffType(str, Enum):
    """Backoff strategy applied between job attempts."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


# Job priorities (higher = dequeued first)
PRIORITY_ZERO_STOCK = 30
PRIORITY_WEBHOOK_STOCK = 25
PRIORITY_CRITICAL_STOCK = 20
PRIORITY_STOCK_ALERT = 20
PRIORITY_WEBHOOK_PRODUCT = 15
PRIORITY_STOCK_DELTA = 10

# ============================================================================
# Alerts
# ============================================================================


class AlertSeverity(str, Enum):
    """Alert severity. HIGH and CRITICAL fan out to every channel."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AlertType(str, Enum):
    """Alert categories."""

    ZERO_STOCK = "zero-stock"
    CRITICAL_STOCK = "critical-stock"
    UPSTREAM_OFFLINE = "upstream-offline"
    QUEUE_BACKLOG = "queue-backlog"
    QUEUE_FAILURE = "queue-failure"
    HEALTH = "health"
    SYNC = "sync"


SEVERITY_COLORS = {
    AlertSeverity.CRITICAL: "#dc3545",
    AlertSeverity.HIGH: "#fd7e14",
    AlertSeverity.MEDIUM: "#ffc107",
    AlertSeverity.LOW: "#28a745",
}

# Upstream offline longer than this is CRITICAL (seconds)
UPSTREAM_OFFLINE_CRITICAL_AFTER = 300
QUEUE_BACKLOG_HIGH_THRESHOLD = 1000
QUEUE_FAILURE_CRITICAL_THRESHOLD = 100

# ============================================================================
# Resilience
# ============================================================================

HALF_OPEN_SUCCESS_THRESHOLD = 3  # Successes in HALF_OPEN needed to close

# Retry settings
MAX_RETRIES = 3  # Maximum retry attempts
RETRY_BASE_DELAY = 1.0  # Base delay for exponential backoff (seconds)
RETRY_MAX_DELAY = 30.0  # Maximum delay for exponential backoff (seconds)
RETRY_FACTOR = 2.0
INTEGRATION_MAX_ATTEMPTS = 5
INTEGRATION_DEFAULT_ATTEMPTS = 3
CRITICAL_RETRIES = 10
CRITICAL_BASE_DELAY = 0.5
CRITICAL_MAX_DELAY = 5.0
CRITICAL_FACTOR = 1.5

RATE_LIMIT_WINDOW_SECONDS = 60.0

# ============================================================================
# Stock thresholds and batching
# ============================================================================

CRITICAL_STOCK_THRESHOLD = 10  # Quantity at or below which stock is critical
POS_DEFAULT_BATCH_SIZE = 100
POS_MAX_BATCH_SIZE = 500
ERP_STOCK_BATCH_SIZE = 100
ERP_DELTA_LIMIT = 1000
ERP_SALES_DELTA_LIMIT = 500
UPSERT_BATCH_SIZE = 100
POS_PRODUCT_PAGE_DELAY = 0.5  # Seconds between product pages
POS_STOCK_BATCH_DELAY = 1.0  # Seconds between stock batches
POS_CLIENT_BATCH_DELAY = 0.5  # Seconds between client stock fetch batches
POPULAR_PRODUCTS_LIMIT = 100
SYNC_STATUS_QUIET_PERIOD_HOURS = 24
SYNC_ERROR_ALERT_THRESHOLD = 10

# ============================================================================
# Key Prefixes
# ============================================================================

KEY_STOCK = "stock:"
KEY_STOCK_CRITICAL = "stock:critical:"
KEY_PRODUCT = "product:"
KEY_POS_PRODUCTS = "pos:products:"
KEY_POS_STOCK = "pos:stock:"
KEY_SYNC_STATUS = "sync:status:"
KEY_LOCK = "lock:"
KEY_POS_LOCK = "pos:lock:"
KEY_QUEUE = "queue:"
KEY_ALERT_SUPPRESS = "alert:suppress:"

# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_SIGNATURE = "X-ERP-Signature"
HEADER_API_KEY = "X-API-KEY"
HEADER_CLIENT_ID = "X-CLIENT-ID"
HEADER_PRIORITY = "X-PRIORITY"
HEADER_REQUEST_ID = "X-Request-ID"
SIGNATURE_PREFIX = "sha256="
