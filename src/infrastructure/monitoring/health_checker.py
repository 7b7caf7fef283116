#!/usr/bin/env python3
"""
Health Checker Module

Health checks for the worker engine's dependencies:
- Key-value store connectivity (cache, locks, queues)
- Central datastore availability
- Upstream integrations (ERP, ERP stock, POS)
- Circuit breaker states
- Queue backlog

Architectural Decision: the key-value store is the only hard dependency
- Without it no job can be claimed, so readiness fails
- A down upstream or open circuit degrades the service but jobs for other
  integrations keep flowing

Author: Senior Solution Architect
Date: 2025-12-05
"""

import asyncio
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from src.core.config.constants import CircuitState, Stage
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

_PROBE_TIMEOUT = 5.0


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class HealthChecker:
    """
    STAGE-H: Health check orchestration

    Usage:
        checker = HealthChecker(version="1.0.0")
        checker.initialize(store=redis, datastore=datastore, integrations={...})
        report = await checker.detailed_health_report()
    """

    def __init__(self, version: str = "1.0.0", environment: str = "development"):
        self.version = version
        self.environment = environment
        self._store = None
        self._datastore = None
        self._integrations: Mapping[str, Any] = {}
        self._breakers = None
        self._queues = None

    def initialize(
        self,
        store=None,
        datastore=None,
        integrations: Mapping[str, Any] | None = None,
        breakers=None,
        queues=None,
    ) -> None:
        """
        Args:
            store: Key-value store (``ping`` / optional ``health_check``)
            datastore: Central datastore (``health_check``)
            integrations: Integration clients by name (``health_check``)
            breakers: ``CircuitBreakerManager``
            queues: ``QueueRegistry``
        """
        self._store = store
        self._datastore = datastore
        self._integrations = integrations or {}
        self._breakers = breakers
        self._queues = queues

    async def _probe(self, check) -> bool:
        try:
            return bool(await asyncio.wait_for(check(), timeout=_PROBE_TIMEOUT))
        except Exception as e:
            logger.warning("Health probe failed", stage=Stage.METRICS.value, error=str(e), error_type=type(e).__name__)
            return False

    async def check_store(self) -> bool:
        if self._store is None:
            return False
        return await self._probe(self._store.ping)

    async def check_integrations(self) -> dict[str, bool]:
        """Lightweight health call against every upstream, concurrently."""
        names = list(self._integrations)
        results = await asyncio.gather(
            *(self._probe(self._integrations[name].health_check) for name in names)
        )
        return dict(zip(names, results))

    async def check_health(self) -> dict[str, Any]:
        """STAGE-H.1: Quick health status"""
        store_ok = await self.check_store()
        return {
            "status": (HealthStatus.HEALTHY if store_ok else HealthStatus.UNHEALTHY).value,
            "timestamp": _now(),
            "version": self.version,
            "components": {"store": "healthy" if store_ok else "unhealthy"},
        }

    async def detailed_health_report(self) -> dict[str, Any]:
        """STAGE-H.2: Detailed health report"""
        components: dict[str, Any] = {}
        issues: list[str] = []

        store_ok = await self.check_store()
        components["store"] = {"status": "healthy" if store_ok else "unhealthy"}
        if not store_ok:
            issues.append("store")

        if self._datastore is not None:
            datastore_ok = await self._probe(self._datastore.health_check)
            components["datastore"] = {"status": "healthy" if datastore_ok else "unhealthy"}
            if not datastore_ok:
                issues.append("datastore")

        for name, ok in (await self.check_integrations()).items():
            components[f"integration:{name}"] = {"status": "healthy" if ok else "unhealthy"}
            if not ok:
                issues.append(f"integration:{name}")

        if self._breakers is not None:
            breaker_stats = self._breakers.get_all_stats()
            components["circuit_breakers"] = breaker_stats
            for name, stats in breaker_stats.items():
                if stats.get("state") == CircuitState.OPEN.value:
                    issues.append(f"circuit_breaker:{name}")

        if self._queues is not None and store_ok:
            components["queues"] = await self._queues.get_queue_stats()

        if not store_ok:
            status = HealthStatus.UNHEALTHY
        elif issues:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        report = {
            "status": status.value,
            "timestamp": _now(),
            "version": self.version,
            "environment": self.environment,
            "components": components,
        }
        if issues:
            report["issues"] = issues
        return report

    async def liveness_check(self) -> dict[str, Any]:
        """Liveness probe: the process answers."""
        return {"status": "alive", "timestamp": _now(), "version": self.version}

    async def readiness_check(self) -> dict[str, Any]:
        """Readiness probe: jobs can be claimed."""
        if await self.check_store():
            return {"status": "ready", "timestamp": _now(), "version": self.version}
        return {
            "status": "not_ready",
            "timestamp": _now(),
            "version": self.version,
            "reason": "Key-value store not available",
        }
