"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys
from unittest.mock import MagicMock

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tests.test_fixtures.channel_factory import RecordingChannel  # noqa: E402
from tests.test_fixtures.datastore_factory import RecordingDatastore  # noqa: E402
from tests.test_fixtures.store_factory import FakeClock, InMemoryStore  # noqa: E402


# ============================================================================
# Pytest Configuration
# ============================================================================

# pytest-asyncio is automatically loaded via pyproject.toml configuration


async def no_sleep(seconds: float) -> None:
    """Drop-in for asyncio.sleep that returns immediately."""
    return None


# ============================================================================
# Mock Configuration Fixtures
# ============================================================================


@pytest.fixture
def mock_settings():
    """
    Real Settings with test values.

    Keyword construction bypasses the environment for the fields given.
    """
    from src.core.config.settings import Settings

    return Settings(
        ENVIRONMENT="test",
        APP_VERSION="1.0.0-test",
        APP_NAME="Stock Sync Test",
        WEBHOOK_ENABLED=True,
        WEBHOOK_SECRET="test-secret",
        WEBHOOK_MAX_BODY_BYTES=1024,
        SCHEDULER_ENABLED=False,
        POS_STORE_SIDS=["store-1"],
        ALERT_CHAT_WEBHOOK_URL="",
        SMTP_HOST="",
    )


# ============================================================================
# Fake Infrastructure Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    """In-memory KeyValueStore sharing the test clock."""
    return InMemoryStore(clock)


@pytest.fixture
def cache_manager(store):
    from src.infrastructure.cache.cache_manager import CacheManager

    return CacheManager(store)


@pytest.fixture
def datastore():
    return RecordingDatastore()


@pytest.fixture
def chat_channel():
    return RecordingChannel("chat")


@pytest.fixture
def email_channel():
    return RecordingChannel("email")


@pytest.fixture
def alert_manager(datastore, chat_channel, email_channel, store):
    from src.alerts import AlertManager

    return AlertManager(datastore, chat=chat_channel, email=email_channel, store=store, suppression_window=3600)


@pytest.fixture
def queues(store, clock):
    """QueueRegistry whose queues share the fake clock."""
    from src.infrastructure.queue.job import QUEUE_DEFAULTS
    from src.infrastructure.queue.job_queue import JobQueue
    from src.infrastructure.queue.registry import QueueRegistry

    registry = QueueRegistry(store)
    for name, config in QUEUE_DEFAULTS.items():
        registry._queues[name] = JobQueue(store, config, clock=clock)
    return registry


@pytest.fixture
def cb_manager():
    """Fresh CircuitBreakerManager, isolated from the global one."""
    from src.core.resilience.circuit_breaker import CircuitBreakerManager

    return CircuitBreakerManager()


@pytest.fixture
def mock_metrics_collector():
    """Mock metrics collector for monitoring testing."""
    from src.infrastructure.monitoring.metrics_collector import MetricsCollector

    return MagicMock(spec=MetricsCollector)


@pytest.fixture
def fast_sleep():
    return no_sleep
