#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

This module provides metrics collection for the worker engine:
- Jobs processed/failed per queue and job duration histogram
- Queue depth per queue and state
- Upstream calls per integration and outcome
- Circuit breaker state per integration
- Rate limiter waits
- Cache hits/misses per namespace
- Alerts per severity and channel

Architectural Decision: prometheus-client for industry-standard metrics
- Scraped from GET /admin/metrics
- Histogram buckets sized for batch sync jobs (seconds to minutes)

Author: Senior Solution Architect
Date: 2025-12-05
"""


from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from src.core.config.constants import CircuitState
from src.core.config.settings import get_settings
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

# Job metrics
JOBS_PROCESSED = Counter(
    'stocksync_jobs_processed_total',
    'Total jobs completed successfully',
    ['queue', 'job_name']
)

JOBS_FAILED = Counter(
    'stocksync_jobs_failed_total',
    'Total job attempts that raised',
    ['queue', 'job_name', 'final']  # final: attempts exhausted
)

JOB_DURATION = Histogram(
    'stocksync_job_duration_seconds',
    'Job processing duration in seconds',
    ['queue', 'job_name'],
    buckets=(0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 180.0, 600.0)
)

QUEUE_DEPTH = Gauge(
    'stocksync_queue_depth',
    'Jobs per queue and state',
    ['queue', 'state']
)

# Upstream metrics
UPSTREAM_CALLS = Counter(
    'stocksync_upstream_calls_total',
    'Total upstream HTTP calls',
    ['integration', 'outcome']  # success, client_error, server_error, timeout
)

UPSTREAM_LATENCY = Histogram(
    'stocksync_upstream_latency_seconds',
    'Upstream response latency',
    ['integration'],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0)
)

# Circuit breaker metrics
CIRCUIT_BREAKER_STATE = Gauge(
    'stocksync_circuit_breaker_state',
    'Circuit breaker state (0=closed, 1=half_open, 2=open)',
    ['integration']
)

CIRCUIT_BREAKER_TRANSITIONS = Counter(
    'stocksync_circuit_breaker_transitions_total',
    'Circuit breaker state transitions',
    ['integration', 'state']
)

# Rate limiting metrics
RATE_LIMIT_WAITS = Counter(
    'stocksync_rate_limit_waits_total',
    'Times a caller slept waiting for the rate limit window',
    ['integration']
)

# Cache metrics
CACHE_HITS = Counter(
    'stocksync_cache_hits_total',
    'Total cache hits',
    ['namespace']
)

CACHE_MISSES = Counter(
    'stocksync_cache_misses_total',
    'Total cache misses',
    ['namespace']
)

# Alert metrics
ALERTS_SENT = Counter(
    'stocksync_alerts_total',
    'Alerts dispatched per channel',
    ['severity', 'channel', 'outcome']
)

ALERTS_SUPPRESSED = Counter(
    'stocksync_alerts_suppressed_total',
    'Alerts suppressed inside the repeat window',
    ['alert_type', 'severity']
)

# Webhook metrics
WEBHOOK_EVENTS = Counter(
    'stocksync_webhook_events_total',
    'Inbound webhook events',
    ['event', 'outcome']
)

# App info
APP_INFO = Info(
    'stocksync_app',
    'Application information'
)

_CIRCUIT_STATE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_job_completed("stock-sync", "sync-stock-delta", 1.25)
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        self.settings = get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Job Metrics
    # =========================================================================

    def record_job_completed(self, queue: str, job_name: str, duration_seconds: float) -> None:
        JOBS_PROCESSED.labels(queue=queue, job_name=job_name).inc()
        JOB_DURATION.labels(queue=queue, job_name=job_name).observe(duration_seconds)

    def record_job_failed(
        self, queue: str, job_name: str, duration_seconds: float, final: bool
    ) -> None:
        JOBS_FAILED.labels(queue=queue, job_name=job_name, final=str(final).lower()).inc()
        JOB_DURATION.labels(queue=queue, job_name=job_name).observe(duration_seconds)

    def record_queue_depth(self, queue: str, counts: dict[str, int]) -> None:
        """Set one gauge per state from a ``counts()`` result."""
        for state, depth in counts.items():
            QUEUE_DEPTH.labels(queue=queue, state=state).set(depth)

    # =========================================================================
    # Upstream Metrics
    # =========================================================================

    def record_upstream_call(
        self, integration: str, outcome: str, duration_seconds: float | None = None
    ) -> None:
        UPSTREAM_CALLS.labels(integration=integration, outcome=outcome).inc()
        if duration_seconds is not None:
            UPSTREAM_LATENCY.labels(integration=integration).observe(duration_seconds)

    # =========================================================================
    # Circuit Breaker Metrics
    # =========================================================================

    def set_circuit_state(self, integration: str, state: CircuitState) -> None:
        """Transition listener for ``CircuitBreakerManager.add_listener``."""
        CIRCUIT_BREAKER_STATE.labels(integration=integration).set(_CIRCUIT_STATE_VALUES[state])
        CIRCUIT_BREAKER_TRANSITIONS.labels(integration=integration, state=state.value).inc()

    def record_rate_limit_wait(self, integration: str) -> None:
        RATE_LIMIT_WAITS.labels(integration=integration).inc()

    # =========================================================================
    # Cache Metrics
    # =========================================================================

    def record_cache_hit(self, namespace: str) -> None:
        CACHE_HITS.labels(namespace=namespace).inc()

    def record_cache_miss(self, namespace: str) -> None:
        CACHE_MISSES.labels(namespace=namespace).inc()

    # =========================================================================
    # Alert Metrics
    # =========================================================================

    def record_alert_sent(self, severity: str, channel: str, outcome: str) -> None:
        ALERTS_SENT.labels(severity=severity, channel=channel, outcome=outcome).inc()

    def record_alert_suppressed(self, alert_type: str, severity: str) -> None:
        ALERTS_SUPPRESSED.labels(alert_type=alert_type, severity=severity).inc()

    def record_webhook_event(self, event: str, outcome: str) -> None:
        WEBHOOK_EVENTS.labels(event=event, outcome=outcome).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """Prometheus text format metrics."""
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
