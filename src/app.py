#!/usr/bin/env python3
"""
FastAPI Application Entry Point

This is the main entry point for the stock-sync worker engine. It composes
the worker runtime (store, caches, queues, integration clients, workers,
scheduler) and exposes the health, admin and webhook routes.

Architecture:
    create_app()
        ├── lifespan: WorkerRuntime.start() / WorkerRuntime.stop()
        ├── request id middleware (log correlation)
        └── routers: health, admin, webhooks (optional)

Architectural Decision: one explicit composition root
- Every collaborator is built here and passed down, so tests can build the
  same graph with fakes
- Routes read the runtime from ``app.state.runtime``

Author: Senior Solution Architect
Date: 2025-12-05
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.alerts import AlertManager, ChatWebhookChannel, EmailChannel
from src.api import admin_router, health_router
from src.core.config.constants import HEADER_REQUEST_ID, QueueName
from src.core.config.settings import Settings, get_settings
from src.core.exceptions import LockUnavailableError, StockSyncError
from src.core.logging import clear_job_id, get_logger, set_job_id, setup_logging
from src.core.resilience.circuit_breaker import get_circuit_breaker_manager
from src.infrastructure.cache.cache_manager import CacheManager
from src.infrastructure.cache.product_cache import ProductCache
from src.infrastructure.cache.redis_client import RedisClient, get_redis_client
from src.infrastructure.cache.stock_cache import StockCache
from src.infrastructure.cache.sync_status_cache import SyncStatusCache
from src.infrastructure.datastore.rest_datastore import RestDatastore
from src.infrastructure.lock.distributed_lock import DistributedLock
from src.infrastructure.monitoring.health_checker import HealthChecker
from src.infrastructure.monitoring.metrics_collector import get_metrics_collector
from src.infrastructure.queue.registry import ProcessorRegistry, QueueRegistry
from src.integrations.erp_client import ErpClient
from src.integrations.erp_stock_client import ErpStockClient
from src.integrations.retail_pos_client import RetailPosClient
from src.scheduling import (
    MaintenanceTasks,
    ManualSyncTrigger,
    Scheduler,
    erp_timers,
    maintenance_timers,
    pos_timers,
)
from src.sync import (
    ErpCatalogWorker,
    ErpStockWorker,
    NotificationWorker,
    ResourceSyncWorker,
    StockAlertRouter,
    register_processors,
)
from src.webhooks import WebhookHandler, webhook_router

logger = get_logger(__name__)

# POS stock alerts are delayed so a burst of batches coalesces before dispatch
POS_CRITICAL_ALERT_DELAY = 5.0
POS_ZERO_ALERT_DELAY = 1.0


# ============================================================================
# Worker Runtime
# ============================================================================

class WorkerRuntime:
    """
    Composition root of the worker engine.

    Usage:
        runtime = WorkerRuntime(get_settings())
        await runtime.start()
        ...
        await runtime.stop()
    """

    def __init__(self, settings: Settings, store=None, metrics=None):
        self.settings = settings
        self.metrics = metrics if metrics is not None else get_metrics_collector()
        self.store = store if store is not None else get_redis_client()

        # Caches
        self.cache = CacheManager(self.store, metrics=self.metrics)
        self.stock_cache = StockCache(
            self.cache,
            ttl=settings.CACHE_TTL_STOCK,
            critical_ttl=settings.CACHE_TTL_STOCK_CRITICAL,
            critical_threshold=settings.CACHE_CRITICAL_THRESHOLD,
        )
        self.product_cache = ProductCache(
            self.cache,
            product_ttl=settings.CACHE_TTL_PRODUCTS,
            customer_ttl=settings.CACHE_TTL_CUSTOMERS,
            pos_product_ttl=settings.CACHE_TTL_POS_PRODUCTS,
            pos_stock_ttl=settings.CACHE_TTL_POS_STOCK,
        )
        self.status_cache = SyncStatusCache(self.cache, ttl=settings.CACHE_TTL_SYNC_STATUS)

        # Resilience
        self.breakers = get_circuit_breaker_manager()
        self.breakers.add_listener(self.metrics.set_circuit_state)

        # Queues
        self.queues = QueueRegistry(
            self.store,
            completed_max_age=settings.QUEUE_COMPLETED_MAX_AGE_HOURS * 3600,
            failed_max_age=settings.QUEUE_FAILED_MAX_AGE_HOURS * 3600,
            metrics=self.metrics,
        )
        self.processors = ProcessorRegistry()

        # Upstreams
        self.datastore = RestDatastore(settings.datastore)
        self.erp = ErpClient(settings.erp, metrics=self.metrics)
        self.erp_stock = ErpStockClient(settings.erp, metrics=self.metrics)
        self.pos = RetailPosClient(settings.pos, product_cache=self.product_cache, metrics=self.metrics)

        # Alerts
        self.chat = ChatWebhookChannel(settings.ALERT_CHAT_WEBHOOK_URL) if settings.ALERT_CHAT_WEBHOOK_URL else None
        self.alerts = AlertManager(
            self.datastore,
            chat=self.chat,
            email=EmailChannel(settings.alerts),
            store=self.store,
            suppression_window=settings.ALERT_SUPPRESSION_WINDOW_SECONDS,
            metrics=self.metrics,
        )

        # Workers
        erp_router = StockAlertRouter(self.queues)
        pos_router = StockAlertRouter(
            self.queues, critical_delay=POS_CRITICAL_ALERT_DELAY, zero_delay=POS_ZERO_ALERT_DELAY
        )
        self.resource_worker = ResourceSyncWorker(
            self.pos,
            self.datastore,
            self.status_cache,
            ResourceSyncWorker.create_lock(self.store, settings.LOCK_POS_SYNC_TTL),
            pos_router,
            lock_ttl=settings.LOCK_POS_SYNC_TTL,
        )
        erp_lock = DistributedLock(self.store, default_ttl=settings.LOCK_ERP_SYNC_TTL)
        self.erp_stock_worker = ErpStockWorker(
            self.erp_stock,
            self.datastore,
            self.stock_cache,
            erp_router,
            self.alerts,
            erp_lock,
            lock_ttl=settings.LOCK_ERP_SYNC_TTL,
        )
        self.erp_catalog_worker = ErpCatalogWorker(
            self.erp, self.datastore, self.product_cache, erp_lock, lock_ttl=settings.LOCK_ERP_SYNC_TTL
        )
        self.notification_worker = NotificationWorker(self.alerts)
        register_processors(
            self.processors,
            self.resource_worker,
            self.erp_stock_worker,
            self.erp_catalog_worker,
            self.notification_worker,
        )
        self.workers = self.queues.create_workers(
            self.processors,
            concurrency={QueueName.POS_SYNC.value: settings.POS_SYNC_CONCURRENCY},
            poll_interval=settings.QUEUE_POLL_INTERVAL,
        )

        # Health
        self.health = HealthChecker(version=settings.APP_VERSION, environment=settings.ENVIRONMENT)
        self.health.initialize(
            store=self.store,
            datastore=self.datastore,
            integrations={"erp": self.erp, "erp-stock": self.erp_stock, "retail-pos": self.pos},
            breakers=self.breakers,
            queues=self.queues,
        )

        # Scheduling
        self.maintenance = MaintenanceTasks(
            self.queues,
            self.alerts,
            self.health,
            self.status_cache,
            self.datastore,
            pos_client=self.pos,
            store_ids=settings.POS_STORE_SIDS,
            breakers=self.breakers,
            metrics=self.metrics,
            backlog_threshold=settings.QUEUE_BACKLOG_ALERT_THRESHOLD,
            pos_backlog_threshold=settings.QUEUE_POS_BACKLOG_ALERT_THRESHOLD,
            failed_threshold=settings.QUEUE_FAILED_ALERT_THRESHOLD,
        )
        self.scheduler = Scheduler(timezone=settings.SCHEDULER_TIMEZONE)
        self.scheduler.add_timers(erp_timers(self.queues))
        self.scheduler.add_timers(pos_timers(self.queues, settings.POS_STORE_SIDS))
        self.scheduler.add_timers(maintenance_timers(self.maintenance))

        self.trigger = ManualSyncTrigger(
            self.queues, default_store=settings.POS_STORE_SIDS[0] if settings.POS_STORE_SIDS else None
        )
        self.webhooks = WebhookHandler(self.queues, self.stock_cache, self.product_cache)

    async def start(self) -> None:
        """STAGE-APP.1: Connect the store, start workers and timers"""
        if isinstance(self.store, RedisClient):
            await self.store.connect()
            logger.info("Redis connected")

        for worker in self.workers:
            await worker.start()
        logger.info("Queue workers started", queues=[w.name for w in self.workers])

        if self.settings.SCHEDULER_ENABLED:
            self.scheduler.start()
            logger.info("Scheduler started", timers=self.scheduler.get_status()["timer_count"])

    async def stop(self) -> None:
        """STAGE-APP.2: Graceful shutdown, in reverse start order"""
        if self.scheduler.running:
            self.scheduler.stop()

        for worker in self.workers:
            await worker.stop()
        await self.queues.close_queues()

        for client in (self.erp, self.erp_stock, self.pos):
            await client.close()
        if self.chat is not None:
            await self.chat.close()
        await self.datastore.close()

        if isinstance(self.store, RedisClient):
            await self.store.disconnect()


# ============================================================================
# Application Lifespan
# ============================================================================

def _lifespan(runtime_factory):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application lifecycle (startup and shutdown).
        """
        settings = get_settings()

        setup_logging(
            log_level=settings.logging.LOG_LEVEL,
            log_format=settings.logging.LOG_FORMAT
        )

        logger.info(
            "Starting stock sync workers",
            environment=settings.app.ENVIRONMENT,
            version=settings.app.APP_VERSION
        )

        runtime = runtime_factory(settings)
        app.state.runtime = runtime
        try:
            await runtime.start()
            logger.info("Application startup complete")

            yield

        finally:
            logger.info("Shutting down application")
            await runtime.stop()
            app.state.runtime = None
            logger.info("Application shutdown complete")

    return lifespan


# ============================================================================
# Application Factory
# ============================================================================

def create_app(runtime_factory=WorkerRuntime) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        runtime_factory: Callable building the runtime from settings

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Resilient ERP/POS stock synchronization workers",
        lifespan=_lifespan(runtime_factory),
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.include_router(health_router)
    app.include_router(admin_router)
    if settings.webhook.WEBHOOK_ENABLED:
        app.include_router(webhook_router)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """
        Inject a request ID into all requests for log correlation.
        """
        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        set_job_id(request_id)

        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = request_id
            return response

        finally:
            clear_job_id()

    @app.get("/", tags=["Root"])
    async def root():
        """
        Root endpoint with API information.
        """
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "docs": "/docs",
            "health": "/health"
        }

    @app.exception_handler(LockUnavailableError)
    async def lock_unavailable_handler(request: Request, exc: LockUnavailableError):
        return JSONResponse(status_code=409, content=exc.to_dict())

    @app.exception_handler(StockSyncError)
    async def stock_sync_exception_handler(request: Request, exc: StockSyncError):
        """Handle worker-engine exceptions raised inside a route."""
        logger.error(
            f"Stock sync exception: {exc.message}",
            error_type=type(exc).__name__,
            job_id=exc.job_id
        )

        return JSONResponse(
            status_code=500,
            content=exc.to_dict(),
        )

    return app
