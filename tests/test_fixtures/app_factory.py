"""
Application Factory for Route Tests

Builds the real ``WorkerRuntime`` over the in-memory store with the queue
workers detached, so submitted jobs stay queued where a test can inspect them.
"""

from src.app import WorkerRuntime


def make_runtime_factory(settings, store, metrics):
    """``runtime_factory`` for ``create_app`` that ignores the global settings."""

    def factory(_settings):
        runtime = WorkerRuntime(settings, store=store, metrics=metrics)
        runtime.workers = []
        return runtime

    return factory
