"""
Priority Job Queues

Named queues over the shared key-value store, their workers and the explicit
processor registry.
"""

from .job import QUEUE_DEFAULTS, BackoffSpec, Job, QueueConfig
from .job_queue import JobQueue
from .registry import ProcessorRegistry, QueueRegistry
from .worker import JobProcessor, QueueWorker

__all__ = [
    "QUEUE_DEFAULTS",
    "BackoffSpec",
    "Job",
    "JobProcessor",
    "JobQueue",
    "ProcessorRegistry",
    "QueueConfig",
    "QueueRegistry",
    "QueueWorker",
]
