#!/usr/bin/env python3
"""
Structured Logging Module using structlog

This module provides production-grade structured logging with:
- Job ID correlation for tracing a sync job across workers
- Stage identifiers for execution flow
- JSON formatting for log aggregation
- Automatic secret redaction (API keys, bearer tokens, passwords)
- Context processors for automatic field injection

Architectural Decision: structlog for production logging
- Context-aware logging with automatic field injection
- JSON output for log aggregation
- ContextVar correlation survives await boundaries

Author: System Architect
Date: 2025-12-05
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from src.core.config.settings import get_settings

# Context variable for the job currently being processed
job_id_ctx: ContextVar[str | None] = ContextVar("job_id", default=None)

_SECRET_FIELDS = {"api_key", "password", "secret", "token", "authorization", "service_key"}

_SECRET_PATTERNS = (
    (re.compile(r"(?i)\bbearer\s+[a-z0-9._\-]+"), "Bearer [REDACTED]"),
    (re.compile(r"(?i)(api[_-]?key|password|secret)=([^\s&]+)"), r"\1=[REDACTED]"),
    (re.compile(r"\bsha256=[a-f0-9]{16,}\b"), "sha256=[REDACTED]"),
    (re.compile(r"\b[\w.-]+@[\w.-]+\.\w+\b"), "[EMAIL]"),
)


def add_job_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add job ID to log event from context variable.

    STAGE-L.1: Job ID injection
    """
    job_id = job_id_ctx.get()
    if job_id and "job_id" not in event_dict:
        event_dict["job_id"] = job_id
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add ISO timestamp to log event.

    STAGE-L.2: Timestamp injection
    """
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact credentials from log events.

    STAGE-L.3: Secret redaction

    - Values of known secret fields → [REDACTED]
    - Bearer tokens, key=value credentials and signatures inside strings
    - Email addresses → [EMAIL]
    """
    for key, value in list(event_dict.items()):
        if key.lower() in _SECRET_FIELDS and value:
            event_dict[key] = "[REDACTED]"
        elif isinstance(value, str):
            for pattern, replacement in _SECRET_PATTERNS:
                value = pattern.sub(replacement, value)
            event_dict[key] = value
    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add log level name to event dict.

    STAGE-L.4: Log level injection
    """
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Setup structured logging with structlog.

    STAGE-L: Logging initialization

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
    """
    settings = get_settings()

    log_level = log_level or settings.logging.LOG_LEVEL
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper())
    )

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_job_id,
            add_timestamp,
            structlog.stdlib.add_log_level,
            add_log_level_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_secrets,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("Stock delta synced", stage="SYNC.2", records=120)
    """
    return structlog.get_logger(name)


def set_job_id(job_id: str) -> None:
    """
    Set the job ID in context for the job being processed.

    Every log line emitted until ``clear_job_id`` carries it.
    """
    job_id_ctx.set(job_id)


def get_job_id() -> str | None:
    """Get current job ID from context."""
    return job_id_ctx.get()


def clear_job_id() -> None:
    """Clear job ID from context."""
    job_id_ctx.set(None)


def log_stage(
    logger: structlog.stdlib.BoundLogger, stage: str, message: str, level: str = "info", **kwargs
) -> None:
    """
    Log a message with stage information.

    Usage:
        log_stage(logger, "LK.1", "Lock acquired", key="pos:lock:store-1")
    """
    log_func = getattr(logger, level.lower())
    log_func(message, stage=stage, **kwargs)
